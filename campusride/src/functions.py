from datetime import datetime
from io import BytesIO
from typing import List, Type, Dict, Any
import qrcode
from qrcode.constants import ERROR_CORRECT_M
from pydantic import BaseModel

from campusride.src import schemas
from campusride.src.constants import (
    QR_BORDER,
    QR_BOX_SIZE,
    TMZ_PRIMARY,
    TMZ_SECONDARY,
)
from campusride.src.exceptions import APIException


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Args:
        exceptions (List[APIException]): List of instantiated exceptions.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        status_code = exception.status_code
        example_key = type(exception).__name__
        example_value = {
            "summary": str(exception.headers),
            "value": {"detail": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Each enum member is formatted as "<NAME>: <VALUE>".

    Example:
        >>> enumStr(PassStatus)
        'PENDING: pending, APPROVED: approved, REJECTED: rejected'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isValidTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
            Example:
                {
                    PassStatus.PENDING: [PassStatus.APPROVED, PassStatus.REJECTED],
                    PassStatus.APPROVED: [],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.

    Notes:
        - If `old_state` is not in the transitions mapping, this will return False.
        - `old_state` must be of the same type as the mapping keys, since
          string enums do not hash like their plain string values.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`. Enum values are stored by their value.

    Example:
        >>> updateIfChanged(bus, fParam, [Bus.bus_number.key, Bus.total_seats.key])
        # bus will be updated where values differ; unchanged fields are skipped silently
    """
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None:
            new_value = getattr(new_value, "value", new_value)
            old_value = getattr(targetObj, field)
            if old_value != new_value:
                setattr(targetObj, field, new_value)


def promoteToParent(
    childObj: BaseModel, targetCls: Type[BaseModel], **overrides
) -> BaseModel:
    """
    Promote one Pydantic model into another, applying overrides
    and defaulting missing fields to None.

    Useful when a narrower query model needs to be adapted into the
    broader model a search function accepts, with role-based scoping
    applied through `overrides`.

    Example:
        >>> promoteToParent(qParam, QueryParams, user_id=token.user_id)
    """
    baseData = childObj.model_dump()
    targetFields = targetCls.model_fields.keys()
    finalData = {
        field: overrides.get(field, baseData.get(field, None)) for field in targetFields
    }
    return targetCls(**finalData)


def endOfYear(moment: datetime | None = None) -> datetime:
    """
    Return the last second of the campus-local year containing `moment`, in UTC.

    Args:
        moment (datetime, optional): Reference time. Defaults to now.

    Example:
        >>> endOfYear(datetime(2025, 3, 1, tzinfo=TMZ_PRIMARY))
        datetime.datetime(2025, 12, 31, 18, 29, 59, tzinfo=zoneinfo.ZoneInfo(key='UTC'))
    """
    if moment is None:
        moment = datetime.now(TMZ_PRIMARY)
    year = moment.astimezone(TMZ_SECONDARY).year
    localEnd = datetime(year, 12, 31, 23, 59, 59, tzinfo=TMZ_SECONDARY)
    return localEnd.astimezone(TMZ_PRIMARY)


def makeQRImage(payload: str) -> bytes:
    """
    Render a payload as a PNG QR code.

    Args:
        payload (str): The text to encode, e.g. the QR payload of a bus pass.

    Returns:
        bytes: PNG image data.
    """
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    with BytesIO() as outputBuffer:
        image.save(outputBuffer)
        return outputBuffer.getvalue()
