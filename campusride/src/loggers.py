from campusride.src.db import User
from campusride.src import openobserve
from campusride.src.schemas import RequestInfo


def logEvent(user: User, requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        user (User): The authenticated user performing the action.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_method`, `_path`, `_user_id` and `_role`.
        - Callers must strip secrets (password hashes, access tokens) from `data`.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_user_id": user.id,
        "_role": user.role,
    }
    logDetails.update(data)
    openobserve.logEvent(logDetails)
