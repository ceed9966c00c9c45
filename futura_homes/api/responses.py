"""
JSON envelope helpers

Every route answers {success, data?, error?, message?}. Amounts are rendered
as decimal strings, dates as ISO strings.
"""

from dataclasses import is_dataclass, asdict
from typing import Any, Dict, Optional

from ..storage import StorageRecord, encode_value


def to_jsonable(value: Any) -> Any:
    """Convert records, dataclasses and containers into JSON-ready values"""
    if isinstance(value, StorageRecord):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return {k: to_jsonable(v) for k, v in asdict(value).items()}
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return encode_value(value)


def envelope(data: Any = None, message: Optional[str] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "data": to_jsonable(data)}
    if message:
        body["message"] = message
    for key, value in extra.items():
        body[key] = to_jsonable(value)
    return body


def error_body(error: str, message: Optional[str] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": error}
    if message:
        body["message"] = message
    body.update(extra)
    return body
