from typing import Annotated, List, Literal, Optional, Union
from fastapi import APIRouter, Depends
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from campusride.api.bearer import bearer_user
from campusride.api.bus import BusSchema
from campusride.api.bus_pass import PassSchema
from campusride.api.notice import NoticeSchema
from campusride.api.route import RouteSchema
from campusride.src.db import Bus, BusPass, Route, User, sessionMaker
from campusride.src import exceptions, validators, getters
from campusride.src.enums import PassStatus, UserRole
from campusride.src.constants import DASHBOARD_NOTICE_COUNT
from campusride.src.functions import fuseExceptionResponses
from campusride.src.urls import URL_DASHBOARD

route_user = APIRouter()


## Output Schema
class StudentDashboard(BaseModel):
    role: Literal["student"]
    pass_: Optional[PassSchema] = Field(default=None, alias="pass")
    bus: Optional[BusSchema] = None
    route: Optional[RouteSchema] = None
    notices: List[NoticeSchema]

    model_config = {"populate_by_name": True}


class DriverDashboard(BaseModel):
    role: Literal["driver"]
    bus: Optional[BusSchema] = None
    route: Optional[RouteSchema] = None
    riders: int
    notices: List[NoticeSchema]


class AdminDashboard(BaseModel):
    role: Literal["admin"]
    pending_passes: List[PassSchema]
    pending_count: int
    bus_count: int
    route_count: int
    notices: List[NoticeSchema]


DashboardSchema = Annotated[
    Union[AdminDashboard, DriverDashboard, StudentDashboard],
    Field(discriminator="role"),
]


## Function
def studentDashboard(session: Session, user: User) -> dict:
    bus_pass = getters.latestPass(user, session)
    bus = route = None
    if bus_pass is not None:
        route = session.query(Route).filter(Route.id == bus_pass.route_id).first()
        if bus_pass.bus_id is not None:
            bus = session.query(Bus).filter(Bus.id == bus_pass.bus_id).first()
    notices = getters.latestNotices(session, DASHBOARD_NOTICE_COUNT)
    return jsonable_encoder(
        {
            "role": user.role,
            "pass": bus_pass,
            "bus": bus,
            "route": route,
            "notices": notices,
        }
    )


def driverDashboard(session: Session, user: User) -> dict:
    bus = getters.driverBus(user, session)
    route = None
    riders = 0
    if bus is not None:
        if bus.route_id is not None:
            route = session.query(Route).filter(Route.id == bus.route_id).first()
        riders = (
            session.query(BusPass)
            .filter(
                BusPass.bus_id == bus.id,
                BusPass.status == PassStatus.APPROVED.value,
            )
            .count()
        )
    notices = getters.latestNotices(session, DASHBOARD_NOTICE_COUNT)
    return jsonable_encoder(
        {
            "role": user.role,
            "bus": bus,
            "route": route,
            "riders": riders,
            "notices": notices,
        }
    )


def adminDashboard(session: Session, user: User) -> dict:
    pending = (
        session.query(BusPass)
        .filter(BusPass.status == PassStatus.PENDING.value)
        .order_by(BusPass.created_on.asc(), BusPass.id.asc())
        .all()
    )
    notices = getters.latestNotices(session, DASHBOARD_NOTICE_COUNT)
    return jsonable_encoder(
        {
            "role": user.role,
            "pending_passes": pending,
            "pending_count": len(pending),
            "bus_count": session.query(Bus).count(),
            "route_count": session.query(Route).count(),
            "notices": notices,
        }
    )


## API endpoints
@route_user.get(
    URL_DASHBOARD,
    tags=["Dashboard"],
    response_model=DashboardSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InactiveAccount()]
    ),
    description="""
    Fetches the dashboard of the signed in user, composed according to the role.        
    Students get their latest pass with its bus and route.      
    Drivers get their bus, its route and the number of approved riders.     
    Admins get the pending passes and the bus and route counts.     
    Every dashboard carries the latest notices.
    """,
)
async def fetch_dashboard(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))

        if user.role == UserRole.ADMIN.value:
            data = adminDashboard(session, user)
            return AdminDashboard.model_validate(data)
        if user.role == UserRole.DRIVER.value:
            data = driverDashboard(session, user)
            return DriverDashboard.model_validate(data)
        data = studentDashboard(session, user)
        return StudentDashboard.model_validate(data)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
