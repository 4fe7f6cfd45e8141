from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from campusride.api.bearer import bearer_user
from campusride.src.db import Bus, BusPass, Route, sessionMaker
from campusride.src import exceptions, validators, getters
from campusride.src.enums import OrderIn, UserRole
from campusride.src.loggers import logEvent
from campusride.src.functions import enumStr, fuseExceptionResponses
from campusride.src.urls import URL_ROUTE

route_user = APIRouter()


## Output Schema
class RouteSchema(BaseModel):
    id: int
    name: str
    stops: List[str]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    name: str = Field(Form(min_length=1, max_length=64))
    stops: List[str] = Field(Form(description="Stop names in travel order"))


class UpdateForm(BaseModel):
    name: str | None = Field(Form(min_length=1, max_length=64, default=None))
    stops: List[str] | None = Field(
        Form(default=None, description="Stop names in travel order")
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    name = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    name: str | None = Field(Query(default=None))
    stop: str | None = Field(Query(default=None))
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
def searchRoute(session: Session, qParam: QueryParams) -> List[Route]:
    query = session.query(Route)

    # Filters
    if qParam.name is not None:
        query = query.filter(Route.name.ilike(f"%{qParam.name}%"))
    # id based
    if qParam.id is not None:
        query = query.filter(Route.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Route.id.in_(qParam.id_list))

    # Ordering
    orderingAttribute = getattr(Route, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    routes = query.all()
    # Stops live in a JSON list, filtered here to stay portable across databases
    if qParam.stop is not None:
        routes = [route for route in routes if qParam.stop in route.stops]
    return routes[qParam.offset : qParam.offset + qParam.limit]


def checkBoardingStops(session: Session, route: Route, stops: List[str]):
    # Open passes keep boarding at a stop of their route
    boardingStops = (
        getters.openPasses(session)
        .filter(BusPass.route_id == route.id)
        .with_entities(BusPass.boarding_stop)
        .distinct()
        .all()
    )
    for (boardingStop,) in boardingStops:
        if boardingStop not in stops:
            raise exceptions.DataInUse(Route)


## API endpoints
@route_user.post(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidValue(Route.stops),
        ]
    ),
    description="""
    Creates a new route with its ordered list of stops.     
    Only admins can create routes.      
    Stops must be non-empty and must not repeat.
    """,
)
async def create_route(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        route = Route(name=fParam.name, stops=validators.routeStops(fParam.stops))
        session.add(route)
        session.commit()
        session.refresh(route)

        routeData = jsonable_encoder(route)
        logEvent(user, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.patch(
    URL_ROUTE + "/{id}",
    tags=["Route"],
    response_model=RouteSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidValue(Route.stops),
            exceptions.DataInUse(Route),
        ]
    ),
    description="""
    Updates the name or the stops of a route.       
    Only admins can update routes.      
    Stops used as the boarding stop of an open pass cannot be removed.      
    Changes are saved only if the route data has been modified.
    """,
)
async def update_route(
    id: int,
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        route = session.query(Route).filter(Route.id == id).first()
        if route is None:
            raise exceptions.InvalidIdentifier()

        if fParam.name is not None and route.name != fParam.name:
            route.name = fParam.name
        if fParam.stops is not None:
            stops = validators.routeStops(fParam.stops)
            if route.stops != stops:
                checkBoardingStops(session, route, stops)
                route.stops = stops

        haveUpdates = session.is_modified(route)
        if haveUpdates:
            session.commit()
            session.refresh(route)

        routeData = jsonable_encoder(route)
        if haveUpdates:
            logEvent(user, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.delete(
    URL_ROUTE + "/{id}",
    tags=["Route"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.DataInUse(Route),
        ]
    ),
    description="""
    Deletes a route.        
    Only admins can delete routes.      
    A route still served by a bus or requested by a pass cannot be deleted.     
    If the route does not exist, the operation is silently ignored.
    """,
)
async def delete_route(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        route = session.query(Route).filter(Route.id == id).first()
        if route is not None:
            servedBy = session.query(Bus.id).filter(Bus.route_id == route.id)
            requestedBy = session.query(BusPass.id).filter(
                BusPass.route_id == route.id
            )
            if servedBy.first() or requestedBy.first():
                raise exceptions.DataInUse(Route)
            session.delete(route)
            session.commit()
            logEvent(user, request_info, jsonable_encoder(route))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the list of routes with their stops.        
    Available to every signed in user.      
    Supports filtering by name, by a stop served and by ID.
    """,
)
async def fetch_routes(qParam: QueryParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        validators.activeUser(getters.user(token, session))

        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
