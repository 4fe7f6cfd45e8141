from datetime import datetime, timezone
from enum import IntEnum
from io import BytesIO
from secrets import token_hex
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.responses import StreamingResponse
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber

from campusride.api.bearer import bearer_user
from campusride.src.db import Bus, BusPass, Route, User, sessionMaker
from campusride.src import exceptions, validators, getters
from campusride.src.enums import OrderIn, PassStatus, UserRole
from campusride.src.constants import QR_CODE_BYTES, REGEX_PASSING_YEAR
from campusride.src.loggers import logEvent
from campusride.src.functions import (
    endOfYear,
    enumStr,
    fuseExceptionResponses,
    makeQRImage,
    promoteToParent,
)
from campusride.src.urls import URL_MY_PASS, URL_PASS, URL_VERIFY_PASS

route_user = APIRouter()

# A pass is reviewed exactly once
PASS_TRANSITIONS = {
    PassStatus.PENDING: [PassStatus.APPROVED, PassStatus.REJECTED],
    PassStatus.APPROVED: [],
    PassStatus.REJECTED: [],
}


## Output Schema
class PassSchema(BaseModel):
    id: int
    user_id: int
    route_id: int
    boarding_stop: str
    branch: str
    passing_year: str
    phone_number: str
    email_id: str
    emergency_contact: str
    photo_url: Optional[str]
    fee_receipt_url: Optional[str]
    status: str
    bus_id: Optional[int]
    valid_until: Optional[datetime]
    qr_code: Optional[str]
    remark: Optional[str]
    reviewed_by: Optional[int]
    reviewed_on: Optional[datetime]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class ApplyForm(BaseModel):
    route_id: int = Field(Form())
    boarding_stop: str = Field(Form(min_length=1, max_length=64))
    branch: str = Field(Form(min_length=1, max_length=32))
    passing_year: str = Field(
        Form(pattern=REGEX_PASSING_YEAR, description="Four digit year, e.g. 2027")
    )
    phone_number: PhoneNumber = Field(
        Form(max_length=32, description="Phone number in RFC3966 format")
    )
    email_id: EmailStr = Field(
        Form(max_length=256, description="Email in RFC 5322 format")
    )
    emergency_contact: PhoneNumber = Field(
        Form(max_length=32, description="Phone number in RFC3966 format")
    )
    photo_url: str | None = Field(Form(max_length=512, default=None))
    fee_receipt_url: str | None = Field(Form(max_length=512, default=None))


class ReviewForm(BaseModel):
    status: PassStatus = Field(Form(description=enumStr(PassStatus)))
    bus_id: int | None = Field(
        Form(default=None, description="Defaults to the first bus on the route")
    )
    valid_until: datetime | None = Field(
        Form(default=None, description="Defaults to the end of the current year")
    )
    remark: str | None = Field(Form(max_length=512, default=None))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    updated_on = 2
    created_on = 3


class QueryParams(BaseModel):
    # filters
    status: PassStatus | None = Field(
        Query(default=None, description=enumStr(PassStatus))
    )
    route_id: int | None = Field(Query(default=None))
    bus_id: int | None = Field(Query(default=None))
    user_id: int | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_ge: int | None = Field(Query(default=None))
    id_le: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class VerifyParams(BaseModel):
    qr_code: str = Field(Query(min_length=1, max_length=64))


## Function
def asUTC(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def openPass(session: Session, user: User) -> BusPass | None:
    """
    Fetch a pass that blocks a new application.

    The applicant row is locked first, so concurrent applications by the same
    student are checked one after the other.
    """
    session.query(User).filter(User.id == user.id).with_for_update().first()
    return getters.openPasses(session).filter(BusPass.user_id == user.id).first()


def assignBus(session: Session, bus_pass: BusPass, bus_id: int | None) -> Bus | None:
    if bus_id is not None:
        bus = session.query(Bus).filter(Bus.id == bus_id).first()
        if bus is None:
            raise exceptions.UnknownValue(BusPass.bus_id)
        if bus.route_id != bus_pass.route_id:
            raise exceptions.InvalidAssociation(BusPass.bus_id, BusPass.route_id)
        return bus

    # Lowest id wins when several buses serve the route
    return (
        session.query(Bus)
        .filter(Bus.route_id == bus_pass.route_id)
        .order_by(Bus.id.asc())
        .first()
    )


def approvePass(session: Session, bus_pass: BusPass, fParam: ReviewForm):
    bus = assignBus(session, bus_pass, fParam.bus_id)
    if fParam.valid_until is not None:
        valid_until = asUTC(fParam.valid_until)
        if valid_until <= datetime.now(timezone.utc):
            raise exceptions.InvalidValue(BusPass.valid_until)
    else:
        valid_until = endOfYear()

    bus_pass.bus_id = bus.id if bus is not None else None
    bus_pass.valid_until = valid_until
    bus_pass.qr_code = token_hex(QR_CODE_BYTES)


def rejectPass(fParam: ReviewForm):
    if fParam.bus_id is not None:
        raise exceptions.UnexpectedParameter(BusPass.bus_id)
    if fParam.valid_until is not None:
        raise exceptions.UnexpectedParameter(BusPass.valid_until)


def searchPass(session: Session, qParam: QueryParams) -> List[BusPass]:
    query = session.query(BusPass)

    # Filters
    if qParam.status is not None:
        query = query.filter(BusPass.status == qParam.status.value)
    if qParam.route_id is not None:
        query = query.filter(BusPass.route_id == qParam.route_id)
    if qParam.bus_id is not None:
        query = query.filter(BusPass.bus_id == qParam.bus_id)
    if qParam.user_id is not None:
        query = query.filter(BusPass.user_id == qParam.user_id)
    # id based
    if qParam.id is not None:
        query = query.filter(BusPass.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(BusPass.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(BusPass.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(BusPass.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(BusPass.created_on >= asUTC(qParam.created_on_ge))
    if qParam.created_on_le is not None:
        query = query.filter(BusPass.created_on <= asUTC(qParam.created_on_le))

    # Ordering
    orderingAttribute = getattr(BusPass, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints
@route_user.post(
    URL_PASS,
    tags=["Bus Pass"],
    response_model=PassSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue(BusPass.route_id),
            exceptions.InvalidAssociation(BusPass.boarding_stop, BusPass.route_id),
            exceptions.DuplicatePass(),
        ]
    ),
    description="""
    Applies for a digital bus pass.
    Only students can apply. The pass is created in pending status.
    The boarding stop must be one of the stops of the requested route.
    A student cannot apply while holding a pending pass or an approved pass that has not expired.
    Applying again after a rejection or after the pass expires is allowed.
    """,
)
async def apply_pass(
    fParam: ApplyForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.STUDENT)

        route = session.query(Route).filter(Route.id == fParam.route_id).first()
        if route is None:
            raise exceptions.UnknownValue(BusPass.route_id)
        validators.boardingStop(route, fParam.boarding_stop)
        if openPass(session, user) is not None:
            raise exceptions.DuplicatePass()

        bus_pass = BusPass(
            user_id=user.id,
            route_id=route.id,
            boarding_stop=fParam.boarding_stop,
            branch=fParam.branch,
            passing_year=fParam.passing_year,
            phone_number=fParam.phone_number,
            email_id=fParam.email_id,
            emergency_contact=fParam.emergency_contact,
            photo_url=fParam.photo_url,
            fee_receipt_url=fParam.fee_receipt_url,
        )
        session.add(bus_pass)
        session.commit()
        session.refresh(bus_pass)

        passData = jsonable_encoder(bus_pass)
        logEvent(user, request_info, passData)
        return passData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_MY_PASS,
    tags=["Bus Pass"],
    response_model=Optional[PassSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches the most recent pass of the signed in student.
    Returns null if the student has never applied.
    """,
)
async def fetch_my_pass(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.STUDENT)

        return getters.latestPass(user, session)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_VERIFY_PASS,
    tags=["Bus Pass"],
    response_model=PassSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InactiveResource(BusPass),
        ]
    ),
    description="""
    Verifies a scanned pass by its QR payload.
    Only drivers and admins can verify passes.
    Returns the approved pass if it is still valid.
    """,
)
async def verify_pass(qParam: VerifyParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.DRIVER, UserRole.ADMIN)

        bus_pass = (
            session.query(BusPass)
            .filter(
                BusPass.qr_code == qParam.qr_code,
                BusPass.status == PassStatus.APPROVED.value,
            )
            .first()
        )
        if bus_pass is None:
            raise exceptions.InvalidIdentifier()

        stillValid = (
            session.query(BusPass.id)
            .filter(
                BusPass.id == bus_pass.id,
                BusPass.valid_until > datetime.now(timezone.utc),
            )
            .first()
        )
        if stillValid is None:
            raise exceptions.InactiveResource(BusPass)
        return bus_pass
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_PASS + "/{id}/qr",
    tags=["Bus Pass"],
    response_class=StreamingResponse,
    responses={
        status.HTTP_200_OK: {"content": {"image/png": {}}},
        **fuseExceptionResponses(
            [
                exceptions.InvalidToken(),
                exceptions.NoPermission(),
                exceptions.InvalidIdentifier(),
                exceptions.InactiveResource(BusPass),
            ]
        ),
    },
    description="""
    Downloads the digital ID of a pass as a PNG QR code.
    Available to the owning student and to admins.
    Only approved passes carry a QR code.
    """,
)
async def download_pass_qr(id: int, bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.STUDENT, UserRole.ADMIN)

        bus_pass = session.query(BusPass).filter(BusPass.id == id).first()
        if bus_pass is None:
            raise exceptions.InvalidIdentifier()
        if user.role == UserRole.STUDENT.value and bus_pass.user_id != user.id:
            raise exceptions.NoPermission()
        if bus_pass.status != PassStatus.APPROVED.value or bus_pass.qr_code is None:
            raise exceptions.InactiveResource(BusPass)

        return StreamingResponse(
            BytesIO(makeQRImage(bus_pass.qr_code)),
            media_type="image/png",
            headers={"Content-Disposition": f"file_name=pass_{bus_pass.id}.png"},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.patch(
    URL_PASS + "/{id}",
    tags=["Bus Pass"],
    response_model=PassSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(BusPass.status),
            exceptions.InvalidAssociation(BusPass.bus_id, BusPass.route_id),
            exceptions.UnexpectedParameter(BusPass.bus_id),
        ]
    ),
    description="""
    Reviews a pending pass.
    Only admins can review passes, and a pass is reviewed only once.
    Approving assigns the given bus, or the lowest numbered bus serving the route when none is given.
    If no bus serves the route, the pass is approved without a bus.
    Approving also sets the validity, defaulting to the end of the current year, and issues the QR code.
    Rejecting records the remark as the reason shown to the student.
    """,
)
async def review_pass(
    id: int,
    fParam: ReviewForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        bus_pass = (
            session.query(BusPass).filter(BusPass.id == id).with_for_update().first()
        )
        if bus_pass is None:
            raise exceptions.InvalidIdentifier()

        validators.stateTransition(
            PASS_TRANSITIONS,
            PassStatus(bus_pass.status),
            fParam.status,
            BusPass.status,
        )
        if fParam.status == PassStatus.APPROVED:
            approvePass(session, bus_pass, fParam)
        else:
            rejectPass(fParam)

        bus_pass.status = fParam.status.value
        bus_pass.remark = fParam.remark
        bus_pass.reviewed_by = user.id
        bus_pass.reviewed_on = datetime.now(timezone.utc)
        session.commit()
        session.refresh(bus_pass)

        passData = jsonable_encoder(bus_pass)
        logEvent(user, request_info, passData)
        return passData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_PASS,
    tags=["Bus Pass"],
    response_model=List[PassSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches bus passes, newest first by default.
    Admins see every pass, drivers see the passes assigned to their bus and students see their own.
    Supports filtering by status, route, bus, user, ID ranges and creation time.
    """,
)
async def fetch_passes(qParam: QueryParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))

        if user.role == UserRole.STUDENT.value:
            qParam = promoteToParent(qParam, QueryParams, user_id=user.id)
        elif user.role == UserRole.DRIVER.value:
            bus = getters.driverBus(user, session)
            if bus is None:
                return []
            qParam = promoteToParent(qParam, QueryParams, bus_id=bus.id)
        return searchPass(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
