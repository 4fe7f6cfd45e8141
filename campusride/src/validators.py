"""
Validation and permission checks for CampusRide API.

This module centralizes guard logic such as:
- Token validation
- Role-based permission checks
- State transition enforcement
- Route and stop membership

All functions raise appropriate exceptions from `campusride.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from sqlalchemy.orm.session import Session
from sqlalchemy import Column
from typing import Any

from campusride.src.db import BusPass, Route, User, UserToken
from campusride.src.enums import AccountStatus, UserRole
from campusride.src import exceptions
from campusride.src.functions import isValidTransition


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def userToken(access_token: str, session: Session) -> UserToken:
    """
    Validate a bearer access token.

    Args:
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        UserToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found or has expired.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(UserToken)
        .filter(
            UserToken.access_token == access_token,
            UserToken.expires_at > current_time,
        )
        .first()
    )

    if token is None:
        raise exceptions.InvalidToken()

    return token


def activeUser(user: User | None) -> User:
    """
    Validate that a token still belongs to an active account.

    Raises:
        exceptions.InvalidToken: If the account no longer exists.
        exceptions.InactiveAccount: If the account is suspended.
    """
    if user is None:
        raise exceptions.InvalidToken()
    if user.status != AccountStatus.ACTIVE:
        raise exceptions.InactiveAccount()
    return user


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------
def userRole(user: User, *roles: UserRole) -> bool:
    """
    Validate that the user holds one of the given roles.

    Returns:
        bool: True if the user's role is among `roles`.

    Raises:
        exceptions.NoPermission: If the user's role is not allowed.
    """
    if user.role in [role.value for role in roles]:
        return True
    raise exceptions.NoPermission()


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state)
    return True


def routeStops(stops: list[str]) -> list[str]:
    """
    Validate and normalize the stop list of a route.

    Stop names are stripped of surrounding whitespace. The list must contain
    at least one stop and no stop may appear twice.

    Raises:
        exceptions.InvalidValue: If the list is empty, has blank or repeated stops.
    """
    normalized = [stop.strip() for stop in stops]
    if not normalized or "" in normalized or len(set(normalized)) != len(normalized):
        raise exceptions.InvalidValue(Route.stops)
    return normalized


def boardingStop(route: Route, stop: str) -> bool:
    """
    Validate that a stop is served by the route.

    Raises:
        exceptions.InvalidAssociation: If the stop is not one of the route's stops.
    """
    if stop not in route.stops:
        raise exceptions.InvalidAssociation(BusPass.boarding_stop, BusPass.route_id)
    return True
