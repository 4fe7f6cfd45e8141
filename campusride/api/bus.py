from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from campusride.api.bearer import bearer_user
from campusride.src.db import Bus, BusPass, Route, User, sessionMaker
from campusride.src import exceptions, validators, getters
from campusride.src.loggers import logEvent
from campusride.src.enums import BusProgress, OrderIn, UserRole
from campusride.src.constants import MAX_BUS_SEATS
from campusride.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from campusride.src.urls import URL_BUS

route_user = APIRouter()


## Output Schema
class BusSchema(BaseModel):
    id: int
    bus_number: str
    driver_id: Optional[int]
    route_id: Optional[int]
    total_seats: int
    current_status: str
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    bus_number: str = Field(Form(min_length=1, max_length=16))
    driver_id: int | None = Field(Form(default=None))
    route_id: int | None = Field(Form(default=None))
    total_seats: int = Field(Form(ge=1, le=MAX_BUS_SEATS))
    current_status: BusProgress = Field(
        Form(description=enumStr(BusProgress), default=BusProgress.GARAGE)
    )


class UpdateForm(BaseModel):
    bus_number: str | None = Field(Form(min_length=1, max_length=16, default=None))
    driver_id: int | None = Field(Form(default=None))
    route_id: int | None = Field(Form(default=None))
    clear_driver: bool = Field(Form(default=False, description="Unassign the driver"))
    clear_route: bool = Field(Form(default=False, description="Unassign the route"))
    total_seats: int | None = Field(Form(ge=1, le=MAX_BUS_SEATS, default=None))
    current_status: BusProgress | None = Field(
        Form(description=enumStr(BusProgress), default=None)
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    bus_number = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    bus_number: str | None = Field(Query(default=None))
    driver_id: int | None = Field(Query(default=None))
    route_id: int | None = Field(Query(default=None))
    current_status: BusProgress | None = Field(
        Query(default=None, description=enumStr(BusProgress))
    )
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.ASC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def checkAssignment(session: Session, driver_id: int | None, route_id: int | None):
    if driver_id is not None:
        driver = session.query(User).filter(User.id == driver_id).first()
        if driver is None or driver.role != UserRole.DRIVER.value:
            raise exceptions.InvalidValue(Bus.driver_id)
    if route_id is not None:
        route = session.query(Route.id).filter(Route.id == route_id).first()
        if route is None:
            raise exceptions.InvalidValue(Bus.route_id)


def updateBus(session: Session, bus: Bus, fParam: UpdateForm):
    checkAssignment(session, fParam.driver_id, fParam.route_id)
    new_route_id = fParam.route_id if fParam.route_id is not None else bus.route_id
    if fParam.clear_route:
        new_route_id = None
    if new_route_id != bus.route_id:
        # Approved passes must stay on a bus serving their route
        riders = getters.openPasses(session).filter(BusPass.bus_id == bus.id)
        if riders.first() is not None:
            raise exceptions.DataInUse(Bus)
    updateIfChanged(
        bus,
        fParam,
        [
            Bus.bus_number.key,
            Bus.driver_id.key,
            Bus.route_id.key,
            Bus.total_seats.key,
            Bus.current_status.key,
        ],
    )
    if fParam.clear_driver and bus.driver_id is not None:
        bus.driver_id = None
    if fParam.clear_route and bus.route_id is not None:
        bus.route_id = None


def broadcastStatus(bus: Bus, fParam: UpdateForm):
    # Drivers may only move the progress label of their own bus
    for field in [
        Bus.bus_number,
        Bus.driver_id,
        Bus.route_id,
        Bus.total_seats,
    ]:
        if getattr(fParam, field.key) is not None:
            raise exceptions.UnexpectedParameter(field)
    if fParam.clear_driver:
        raise exceptions.UnexpectedParameter(Bus.driver_id)
    if fParam.clear_route:
        raise exceptions.UnexpectedParameter(Bus.route_id)
    if fParam.current_status is not None:
        if bus.current_status != fParam.current_status.value:
            bus.current_status = fParam.current_status.value


def searchBus(session: Session, qParam: QueryParams) -> List[Bus]:
    query = session.query(Bus)

    # Filters
    if qParam.bus_number is not None:
        query = query.filter(Bus.bus_number.ilike(f"%{qParam.bus_number}%"))
    if qParam.driver_id is not None:
        query = query.filter(Bus.driver_id == qParam.driver_id)
    if qParam.route_id is not None:
        query = query.filter(Bus.route_id == qParam.route_id)
    if qParam.current_status is not None:
        query = query.filter(Bus.current_status == qParam.current_status.value)
    # id based
    if qParam.id is not None:
        query = query.filter(Bus.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Bus.id.in_(qParam.id_list))

    # Ordering
    orderingAttribute = getattr(Bus, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints
@route_user.post(
    URL_BUS,
    tags=["Bus"],
    response_model=BusSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidValue(Bus.driver_id),
            exceptions.UniqueViolation("bus_number"),
        ]
    ),
    description="""
    Creates a new bus, optionally assigning a driver and a route.       
    Only admins can create buses.       
    The driver must be an account with the driver role and drives at most one bus.
    """,
)
async def create_bus(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        checkAssignment(session, fParam.driver_id, fParam.route_id)
        bus = Bus(
            bus_number=fParam.bus_number,
            driver_id=fParam.driver_id,
            route_id=fParam.route_id,
            total_seats=fParam.total_seats,
            current_status=fParam.current_status.value,
        )
        session.add(bus)
        session.commit()
        session.refresh(bus)

        busData = jsonable_encoder(bus)
        logEvent(user, request_info, busData)
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.patch(
    URL_BUS + "/{id}",
    tags=["Bus"],
    response_model=BusSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UnexpectedParameter(Bus.route_id),
            exceptions.DataInUse(Bus),
        ]
    ),
    description="""
    Updates an existing bus.        
    Drivers can only broadcast the current status label of the bus assigned to them.        
    The status label must be one of Starting, Stop 1, Stop 2, Halfway, Approaching, Arrived, Garage.        
    Admins can update every field, including driver and route assignment.      
    The route cannot change while approved, unexpired passes ride the bus.      
    Concurrent status updates follow last-write-wins.       
    Changes are saved only if the bus data has been modified.
    """,
)
async def update_bus(
    id: int,
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN, UserRole.DRIVER)

        bus = session.query(Bus).filter(Bus.id == id).first()
        if bus is None:
            raise exceptions.InvalidIdentifier()

        if user.role == UserRole.DRIVER.value:
            if bus.driver_id != user.id:
                raise exceptions.NoPermission()
            broadcastStatus(bus, fParam)
        else:
            updateBus(session, bus, fParam)

        haveUpdates = session.is_modified(bus)
        if haveUpdates:
            session.commit()
            session.refresh(bus)

        busData = jsonable_encoder(bus)
        if haveUpdates:
            logEvent(user, request_info, busData)
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.delete(
    URL_BUS + "/{id}",
    tags=["Bus"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.DataInUse(Bus),
        ]
    ),
    description="""
    Deletes a bus.      
    Only admins can delete buses.       
    A bus assigned to any pass cannot be deleted.       
    If the bus does not exist, the operation is silently ignored.
    """,
)
async def delete_bus(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        bus = session.query(Bus).filter(Bus.id == id).first()
        if bus is not None:
            if session.query(BusPass.id).filter(BusPass.bus_id == bus.id).first():
                raise exceptions.DataInUse(Bus)
            session.delete(bus)
            session.commit()
            logEvent(user, request_info, jsonable_encoder(bus))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the list of buses with their live status label.     
    Available to every signed in user.      
    Supports filtering by bus number, driver, route, status and ID.
    """,
)
async def fetch_buses(qParam: QueryParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        validators.activeUser(getters.user(token, session))

        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
