from datetime import datetime, timezone
from typing import List
from fastapi import Request
from sqlalchemy import and_, or_
from sqlalchemy.orm import Query
from sqlalchemy.orm.session import Session

from campusride.src import schemas
from campusride.src.db import Bus, BusPass, Notice, User, UserToken
from campusride.src.enums import PassStatus


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
    """
    return schemas.RequestInfo(method=request.method, path=request.url.path)


def user(token: UserToken, session: Session) -> User:
    """Fetch the account a validated token belongs to."""
    return session.query(User).filter(User.id == token.user_id).first()


def driverBus(user: User, session: Session) -> Bus | None:
    """Fetch the bus assigned to a driver, if any."""
    return session.query(Bus).filter(Bus.driver_id == user.id).first()


def latestPass(user: User, session: Session) -> BusPass | None:
    """Fetch the most recent pass applied for by a student, if any."""
    return (
        session.query(BusPass)
        .filter(BusPass.user_id == user.id)
        .order_by(BusPass.created_on.desc(), BusPass.id.desc())
        .first()
    )


def latestNotices(session: Session, count: int) -> List[Notice]:
    return (
        session.query(Notice)
        .order_by(Notice.created_on.desc(), Notice.id.desc())
        .limit(count)
        .all()
    )


def openPasses(session: Session) -> Query:
    """
    Query the passes that are still open.

    A pass is open while it is pending, or approved and not yet expired.
    """
    current_time = datetime.now(timezone.utc)
    return session.query(BusPass).filter(
        or_(
            BusPass.status == PassStatus.PENDING.value,
            and_(
                BusPass.status == PassStatus.APPROVED.value,
                BusPass.valid_until > current_time,
            ),
        )
    )
