from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from campusride.api.bearer import bearer_user
from campusride.src.db import Notice, sessionMaker
from campusride.src import exceptions, validators, getters
from campusride.src.enums import NoticeCategory, OrderIn, UserRole
from campusride.src.loggers import logEvent
from campusride.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from campusride.src.urls import URL_NOTICE

route_user = APIRouter()


## Output Schema
class NoticeSchema(BaseModel):
    id: int
    title: str
    content: str
    category: str
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    title: str = Field(Form(min_length=1, max_length=128))
    content: str = Field(Form(min_length=1, max_length=4096))
    category: NoticeCategory = Field(
        Form(description=enumStr(NoticeCategory), default=NoticeCategory.GENERAL)
    )


class UpdateForm(BaseModel):
    title: str | None = Field(Form(min_length=1, max_length=128, default=None))
    content: str | None = Field(Form(min_length=1, max_length=4096, default=None))
    category: NoticeCategory | None = Field(
        Form(description=enumStr(NoticeCategory), default=None)
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    updated_on = 2
    created_on = 3


class QueryParams(BaseModel):
    # filters
    title: str | None = Field(Query(default=None))
    category: NoticeCategory | None = Field(
        Query(default=None, description=enumStr(NoticeCategory))
    )
    # id based
    id: int | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(
        Query(default=OrderBy.created_on, description=enumStr(OrderBy))
    )
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchNotice(session: Session, qParam: QueryParams) -> List[Notice]:
    query = session.query(Notice)

    # Filters
    if qParam.title is not None:
        query = query.filter(Notice.title.ilike(f"%{qParam.title}%"))
    if qParam.category is not None:
        query = query.filter(Notice.category == qParam.category.value)
    if qParam.id is not None:
        query = query.filter(Notice.id == qParam.id)

    # Ordering, newer rows win ties on the same timestamp
    orderingAttribute = getattr(Notice, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc(), Notice.id.asc())
    else:
        query = query.order_by(orderingAttribute.desc(), Notice.id.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints
@route_user.post(
    URL_NOTICE,
    tags=["Notice"],
    response_model=NoticeSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Publishes a notice on the notice board.     
    Only admins can publish notices.
    """,
)
async def create_notice(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        notice = Notice(
            title=fParam.title,
            content=fParam.content,
            category=fParam.category.value,
        )
        session.add(notice)
        session.commit()
        session.refresh(notice)

        noticeData = jsonable_encoder(notice)
        logEvent(user, request_info, noticeData)
        return noticeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.patch(
    URL_NOTICE + "/{id}",
    tags=["Notice"],
    response_model=NoticeSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Edits a published notice.       
    Only admins can edit notices.       
    Changes are saved only if the notice data has been modified.
    """,
)
async def update_notice(
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

        notice = session.query(Notice).filter(Notice.id == id).first()
        if notice is None:
            raise exceptions.InvalidIdentifier()

        updateIfChanged(
            notice,
            fParam,
            [Notice.title.key, Notice.content.key, Notice.category.key],
        )

        haveUpdates = session.is_modified(notice)
        if haveUpdates:
            session.commit()
            session.refresh(notice)

        noticeData = jsonable_encoder(notice)
        if haveUpdates:
            logEvent(user, request_info, noticeData)
        return noticeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.delete(
    URL_NOTICE + "/{id}",
    tags=["Notice"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Removes a notice from the notice board.     
    Only admins can remove notices.     
    If the notice does not exist, the operation is silently ignored.
    """,
)
async def delete_notice(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))
        validators.userRole(user, UserRole.ADMIN)

        notice = session.query(Notice).filter(Notice.id == id).first()
        if notice is not None:
            session.delete(notice)
            session.commit()
            logEvent(user, request_info, jsonable_encoder(notice))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_NOTICE,
    tags=["Notice"],
    response_model=List[NoticeSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the notice board, newest first by default.      
    Available to every signed in user.
    """,
)
async def fetch_notices(qParam: QueryParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        validators.activeUser(getters.user(token, session))

        return searchNotice(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
