from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import APIRouter, Depends, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from campusride.api.bearer import bearer_user
from campusride.src.constants import (
    ALLOW_ADMIN_SIGNUP,
    MAX_TOKEN_VALIDITY,
    MAX_USER_TOKENS,
    REGEX_PASSWORD,
    REGEX_USERNAME,
)
from campusride.src.db import User, UserToken, sessionMaker
from campusride.src import passwords, exceptions, validators, getters
from campusride.src.enums import AccountStatus, PlatformType, UserRole
from campusride.src.loggers import logEvent
from campusride.src.functions import enumStr, fuseExceptionResponses
from campusride.src.urls import URL_LOGIN, URL_LOGOUT, URL_REGISTER, URL_USER

route_user = APIRouter()


## Output Schema
class UserSchema(BaseModel):
    id: int
    full_name: str
    username: str
    role: str
    status: int
    updated_on: Optional[datetime]
    created_on: datetime


class SessionSchema(UserSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: datetime


## Input Forms
class RegisterForm(BaseModel):
    full_name: str = Field(Form(min_length=1, max_length=64))
    username: str = Field(Form(pattern=REGEX_USERNAME, min_length=4, max_length=32))
    password: str = Field(Form(pattern=REGEX_PASSWORD, min_length=6, max_length=32))
    role: UserRole = Field(
        Form(description=enumStr(UserRole), default=UserRole.STUDENT)
    )
    platform_type: PlatformType = Field(
        Form(description=enumStr(PlatformType), default=PlatformType.OTHER)
    )
    client_details: str | None = Field(Form(max_length=1024, default=None))


class LoginForm(BaseModel):
    username: str = Field(Form(min_length=1, max_length=32))
    password: str = Field(Form(min_length=6, max_length=32))
    platform_type: PlatformType = Field(
        Form(description=enumStr(PlatformType), default=PlatformType.OTHER)
    )
    client_details: str | None = Field(Form(max_length=1024, default=None))


## Function
def issueToken(
    session: Session,
    user: User,
    platform_type: PlatformType,
    client_details: str | None,
) -> UserToken:
    # Remove excess tokens from DB
    tokens = (
        session.query(UserToken)
        .filter(UserToken.user_id == user.id)
        .order_by(UserToken.created_on.desc(), UserToken.id.desc())
        .all()
    )
    if len(tokens) >= MAX_USER_TOKENS:
        for token in tokens[MAX_USER_TOKENS - 1 :]:
            session.delete(token)
        session.flush()

    expires_at = datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY)
    token = UserToken(
        user_id=user.id,
        expires_in=MAX_TOKEN_VALIDITY,
        expires_at=expires_at,
        platform_type=platform_type,
        client_details=client_details,
    )
    session.add(token)
    return token


def sessionData(user: User, token: UserToken) -> dict:
    userData = jsonable_encoder(user, exclude={"password"})
    userData.update(
        {
            "access_token": token.access_token,
            "token_type": "bearer",
            "expires_in": token.expires_in,
            "expires_at": jsonable_encoder(token.expires_at),
        }
    )
    return userData


## API endpoints
@route_user.post(
    URL_REGISTER,
    tags=["Account"],
    response_model=SessionSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.NoPermission(), exceptions.UniqueViolation("username")]
    ),
    description="""
    Creates a new account and signs it in.      
    The password is hashed using Argon2 before storing.     
    Duplicate usernames are not allowed.        
    Registering as admin is only possible while ALLOW_ADMIN_SIGNUP is enabled.      
    Returns the new user together with a fresh access token.
    """,
)
async def register(
    fParam: RegisterForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        if fParam.role == UserRole.ADMIN and not ALLOW_ADMIN_SIGNUP:
            raise exceptions.NoPermission()

        user = User(
            full_name=fParam.full_name,
            username=fParam.username,
            password=passwords.makePassword(fParam.password),
            role=fParam.role.value,
        )
        session.add(user)
        session.flush()

        token = issueToken(session, user, fParam.platform_type, fParam.client_details)
        session.commit()
        session.refresh(user)
        session.refresh(token)

        logEvent(user, request_info, jsonable_encoder(user, exclude={"password"}))
        return sessionData(user, token)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.post(
    URL_LOGIN,
    tags=["Account"],
    response_model=SessionSchema,
    responses=fuseExceptionResponses(
        [exceptions.InactiveAccount(), exceptions.InvalidCredentials()]
    ),
    description="""
    Signs a user in after validating credentials.       
    If the credentials are valid and the account is active, a new token is generated and returned.      
    Limits active tokens using MAX_USER_TOKENS (oldest tokens are rotated out).     
    Sets expiration with expires_in=MAX_TOKEN_VALIDITY (in seconds).        
    Logs the authentication event for audit tracking.
    """,
)
async def login(
    fParam: LoginForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = session.query(User).filter(User.username == fParam.username).first()
        if user is None:
            raise exceptions.InvalidCredentials()
        if not passwords.checkPassword(fParam.password, user.password):
            raise exceptions.InvalidCredentials()
        if user.status != AccountStatus.ACTIVE:
            raise exceptions.InactiveAccount()
        if passwords.needsRehash(user.password):
            user.password = passwords.makePassword(fParam.password)

        token = issueToken(session, user, fParam.platform_type, fParam.client_details)
        session.commit()
        session.refresh(token)

        tokenLogData = jsonable_encoder(token, exclude={"access_token"})
        logEvent(user, request_info, tokenLogData)
        return sessionData(user, token)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.post(
    URL_LOGOUT,
    tags=["Account"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes the access token used in the request.       
    Logs the token revocation event for audit tracking.
    """,
)
async def logout(
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = getters.user(token, session)

        session.delete(token)
        session.commit()
        if user is not None:
            logEvent(
                user,
                request_info,
                jsonable_encoder(token, exclude={"access_token"}),
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_USER,
    tags=["Account"],
    response_model=UserSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InactiveAccount()]
    ),
    description="""
    Returns the account the access token belongs to.        
    Clients use the role to decide which dashboard to show.
    """,
)
async def fetch_user(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer.credentials, session)
        user = validators.activeUser(getters.user(token, session))

        return jsonable_encoder(user, exclude={"password"})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
