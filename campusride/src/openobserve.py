import base64, json, logging, requests
from requests import Response

from campusride.src.constants import (
    OPENOBSERVE_ENABLED,
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_USERNAME,
)

# Prepare Basic Auth credentials
credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")

# Default headers for all requests
headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

# Construct OpenObserve endpoint URL
openobserve_host = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserve_url = f"{openobserve_host}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"

# Local sink used when OpenObserve shipping is disabled
logger = logging.getLogger("campusride.events")


def logEvent(eventData: dict) -> Response | None:
    """
    Send an event log to the configured OpenObserve instance.

    The event is serialized as JSON and posted to the OpenObserve stream
    using HTTP Basic authentication. When `OPENOBSERVE_ENABLED` is false
    the event is written to the `campusride.events` logger instead.

    Args:
        eventData (dict): A dictionary representing the event log to be sent.
            Example:
                {
                    "_method": "PATCH",
                    "_path": "/api/passes/7",
                    "_user_id": 1,
                    "_role": "admin",
                    "status": "approved"
                }

    Returns:
        requests.Response | None: The OpenObserve response, or None when shipping is disabled.
    """
    if not OPENOBSERVE_ENABLED:
        logger.info(json.dumps(eventData, default=str))
        return None
    return requests.post(openobserve_url, headers=headers, data=json.dumps(eventData))
