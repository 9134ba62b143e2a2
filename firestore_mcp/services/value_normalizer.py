"""
Conversion between Firestore native values and JSON-safe plain values.

Forward direction (``to_plain``) turns whatever the Firestore client hands back
into a tree of dicts, lists and scalars that can be serialized into a tool
response. Timestamps become ISO-8601 UTC strings, geo points become
``{"latitude", "longitude"}`` and document references become::

    {"type": "reference", "path": "users/u1", "id": "u1", "collectionId": "users"}

Reverse direction (``to_native``) turns a plain value plus a requested
``TargetType`` back into something the client can store. Conversion is best
effort: when the value does not fit the requested type the raw value is
returned unchanged so a single bad field never aborts a write.
"""
import base64
import json
import math
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from google.cloud.firestore import GeoPoint
from google.cloud.firestore_v1.base_document import BaseDocumentReference

from ..utils.constants import CIRCULAR_REFERENCE_MARKER, DEFAULT_MAX_DEPTH, MAX_DEPTH_MARKER

logger = structlog.get_logger()

NormalizedValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class TargetType(str, Enum):
    """Native type requested for a plain value."""
    TIMESTAMP = "timestamp"
    GEOPOINT = "geopoint"
    REFERENCE = "reference"
    ARRAY = "array"
    MAP = "map"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    NULL = "null"
    UNSPECIFIED = "unspecified"

    @classmethod
    def resolve(cls, value: Union["TargetType", str, None]) -> "TargetType":
        """Map a type name to a TargetType; unknown names are UNSPECIFIED."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.UNSPECIFIED
        name = value.strip().lower()
        if name == "object":
            return cls.MAP
        try:
            return cls(name)
        except ValueError:
            return cls.UNSPECIFIED


def looks_like_reference_path(value: Any) -> bool:
    """
    Best-effort check for a serialized document path such as ``users/u1``.

    True for strings containing ``/`` with at least two non-empty segments.
    This does not prove the path names a document (that needs an even segment
    count), only that it is worth trying to resolve as one.
    """
    if not isinstance(value, str) or "/" not in value:
        return False
    segments = [segment for segment in value.split("/") if segment]
    return len(segments) >= 2


def format_timestamp(value: datetime) -> str:
    """Render a datetime as an ISO-8601 UTC string with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def reference_to_plain(path: str) -> Dict[str, str]:
    """Build the tagged plain form of a document reference path."""
    segments = [segment for segment in path.split("/") if segment]
    return {
        "type": "reference",
        "path": "/".join(segments),
        "id": segments[-1],
        "collectionId": segments[-2] if len(segments) > 1 else "",
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_truthy(value: Any) -> bool:
    # Containers are truthy even when empty, like JSON values in JavaScript.
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


class ValueNormalizer:
    """
    Bidirectional converter between Firestore values and plain values.

    ``store`` is anything with a ``document(path)`` method returning a
    document reference (a Firestore client, or ``FirestoreService``). It is
    only used to resolve references in ``to_native``.
    """

    def __init__(self, store: Any = None, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        self.store = store
        self.max_depth = max_depth

        self._converters: Dict[TargetType, Callable[[Any], Any]] = {
            TargetType.TIMESTAMP: self._to_timestamp,
            TargetType.GEOPOINT: self._to_geopoint,
            TargetType.REFERENCE: self._to_reference,
            TargetType.ARRAY: self._to_array,
            TargetType.MAP: self._to_map,
            TargetType.BOOLEAN: self._to_boolean,
            TargetType.NUMBER: self._to_number,
            TargetType.STRING: self._to_string,
            TargetType.NULL: lambda raw: None,
            TargetType.UNSPECIFIED: self._sniff,
        }

    # Native -> plain

    def to_plain(self, value: Any, max_depth: Optional[int] = None) -> NormalizedValue:
        """
        Convert a native Firestore value into a JSON-safe plain value.

        A composite value nested inside itself is replaced by
        ``"[circular reference]"``; anything nested deeper than ``max_depth``
        is replaced by ``"[maximum depth reached]"``.
        """
        if max_depth is None:
            max_depth = self.max_depth
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        return self._to_plain(value, set(), 0, max_depth)

    def document_to_plain(self, data: Optional[Dict[str, Any]]) -> Dict[str, NormalizedValue]:
        """
        Convert the field map of a document snapshot.

        Fields are converted one by one so that a top-level ``path`` field
        never turns the whole document into a reference. The field map itself
        counts as the first level of nesting.
        """
        return {
            str(key): self._to_plain(value, set(), 1, self.max_depth)
            for key, value in (data or {}).items()
        }

    def _to_plain(self, value: Any, visited: set, depth: int, max_depth: int) -> NormalizedValue:
        if depth > max_depth:
            return MAX_DEPTH_MARKER

        if value is None:
            return None

        if isinstance(value, datetime):
            return format_timestamp(value)

        if isinstance(value, date):
            return format_timestamp(datetime.combine(value, time.min, tzinfo=timezone.utc))

        if isinstance(value, GeoPoint):
            return {"latitude": value.latitude, "longitude": value.longitude}

        if isinstance(value, BaseDocumentReference):
            return reference_to_plain(value.path)

        if isinstance(value, dict):
            if value.get("type") != "reference" and looks_like_reference_path(value.get("path")):
                return reference_to_plain(value["path"])

            if id(value) in visited:
                return CIRCULAR_REFERENCE_MARKER
            visited.add(id(value))
            try:
                return {
                    str(key): self._to_plain(item, visited, depth + 1, max_depth)
                    for key, item in value.items()
                }
            finally:
                visited.discard(id(value))

        if isinstance(value, (list, tuple)):
            if id(value) in visited:
                return CIRCULAR_REFERENCE_MARKER
            visited.add(id(value))
            try:
                return [self._to_plain(item, visited, depth + 1, max_depth) for item in value]
            finally:
                visited.discard(id(value))

        if isinstance(value, (bool, int, float, str)):
            return value

        if isinstance(value, bytes):
            return base64.b64encode(value).decode("ascii")

        return str(value)

    # Plain -> native

    def to_native(self, raw: Any, target_type: Union[TargetType, str, None] = TargetType.UNSPECIFIED) -> Any:
        """
        Convert a plain value to the native type named by ``target_type``.

        Returns ``raw`` unchanged when it cannot be converted.
        """
        target = TargetType.resolve(target_type)
        return self._converters[target](raw)

    def restore_tagged(self, data: Any) -> Any:
        """Turn tagged reference dicts inside a plain document back into references."""
        if isinstance(data, dict):
            if data.get("type") == "reference" and isinstance(data.get("path"), str):
                return self._to_reference(data)
            return {key: self.restore_tagged(item) for key, item in data.items()}
        if isinstance(data, list):
            return [self.restore_tagged(item) for item in data]
        return data

    def _fallback(self, raw: Any, target: TargetType) -> Any:
        logger.debug("Value not converted", target_type=target.value, value_type=type(raw).__name__)
        return raw

    def _to_timestamp(self, raw: Any) -> Any:
        if isinstance(raw, datetime):
            return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)

        if isinstance(raw, date):
            return datetime.combine(raw, time.min, tzinfo=timezone.utc)

        if isinstance(raw, str):
            text = raw.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return self._fallback(raw, TargetType.TIMESTAMP)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

        if _is_number(raw):
            try:
                return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return self._fallback(raw, TargetType.TIMESTAMP)

        return self._fallback(raw, TargetType.TIMESTAMP)

    def _to_geopoint(self, raw: Any) -> Any:
        if isinstance(raw, dict) and _is_number(raw.get("latitude")) and _is_number(raw.get("longitude")):
            return GeoPoint(raw["latitude"], raw["longitude"])
        return self._fallback(raw, TargetType.GEOPOINT)

    def _to_reference(self, raw: Any) -> Any:
        path = raw.get("path") if isinstance(raw, dict) else raw
        if self.store is None or not looks_like_reference_path(path):
            return self._fallback(raw, TargetType.REFERENCE)
        try:
            return self.store.document(path.strip("/"))
        except ValueError:
            # Odd segment count: a collection path, not a document path
            return self._fallback(raw, TargetType.REFERENCE)

    def _to_array(self, raw: Any) -> Any:
        if isinstance(raw, (list, tuple)):
            return list(raw)
        if isinstance(raw, str):
            try:
                parsed = json.loads(raw)
            except ValueError:
                return [raw]
            return parsed if isinstance(parsed, list) else [raw]
        return self._fallback(raw, TargetType.ARRAY)

    def _to_map(self, raw: Any) -> Any:
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str):
            try:
                parsed = json.loads(raw)
            except ValueError:
                return {"value": raw}
            return parsed if isinstance(parsed, dict) else {"value": raw}
        return self._fallback(raw, TargetType.MAP)

    def _to_boolean(self, raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
            return raw.strip().lower() == "true"
        return _is_truthy(raw)

    def _to_number(self, raw: Any) -> Any:
        if _is_number(raw):
            return raw
        if isinstance(raw, str):
            text = raw.strip()
            # Digit separators are Python syntax, not JSON numbers
            if "_" in text:
                return self._fallback(raw, TargetType.NUMBER)
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError:
                return self._fallback(raw, TargetType.NUMBER)
            if math.isfinite(number):
                return number
        return self._fallback(raw, TargetType.NUMBER)

    def _to_string(self, raw: Any) -> str:
        if isinstance(raw, str):
            return raw
        if raw is None:
            return "null"
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, datetime):
            return format_timestamp(raw)
        if isinstance(raw, (dict, list, tuple)):
            return json.dumps(raw, default=str)
        return str(raw)

    def _sniff(self, raw: Any) -> Any:
        if isinstance(raw, date):
            return self._to_timestamp(raw)

        if isinstance(raw, dict):
            if _is_number(raw.get("latitude")) and _is_number(raw.get("longitude")):
                return self._to_geopoint(raw)
            if raw.get("type") == "reference" or isinstance(raw.get("path"), str):
                return self._to_reference(raw)
            return raw

        if looks_like_reference_path(raw):
            return self._to_reference(raw)

        return raw
