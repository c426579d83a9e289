"""
Conversion between the three representations a query value passes through.

    application   snake_case names, PointerRef and datetime objects
    wire          camelCase names, {"__type": "Pointer"|"Date", ...} tagged objects
    storage       MongoDB field layout (_id, _created_at, _p_<field>, "Class$id" strings)

The compiler produces wire-form pipelines. The executors encode them for their
target just before sending: "remote" for the Parse REST aggregate endpoint and
"storage" for running the pipeline directly on MongoDB.
"""
from __future__ import annotations
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId

from ..errors import ConversionError
from ..models.pointer import COMPACT_POINTER_RE, PointerRef, is_tagged, key_str, normalize_keys
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

TARGETS = ("remote", "storage")

LOGICAL_OPERATORS = ("$and", "$or", "$nor")
MEMBERSHIP_OPERATORS = ("$in", "$nin", "$all")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


class FieldMapper:
    """Field name conversions between application, wire and storage spellings."""

    WIRE_ALIASES = {
        "id": "objectId",
        "object_id": "objectId",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }
    STORAGE_NAMES = {
        "objectId": "_id",
        "createdAt": "_created_at",
        "updatedAt": "_updated_at",
    }
    WIRE_NAMES = {v: k for k, v in STORAGE_NAMES.items()}

    @staticmethod
    def _is_reserved(name: str) -> bool:
        return name.startswith("_") or name.startswith("$")

    @classmethod
    def to_wire(cls, name: str) -> str:
        """Wire spelling of a name, e.g. author.first_name becomes author.firstName."""
        name = key_str(name)
        if cls._is_reserved(name):
            return name
        segments = []
        for segment in name.split("."):
            if segment in cls.WIRE_ALIASES:
                segments.append(cls.WIRE_ALIASES[segment])
                continue
            head, *rest = segment.split("_")
            # a part without a leading letter keeps its underscore: track_2 -> track_2
            segments.append(head + "".join(p[:1].upper() + p[1:] if p[:1].isalpha() else f"_{p}" for p in rest))
        return ".".join(segments)

    @classmethod
    def from_wire(cls, name: str) -> str:
        name = key_str(name)
        if cls._is_reserved(name):
            return name
        return ".".join(_CAMEL_BOUNDARY.sub(r"_\1", s).lower() for s in name.split("."))

    @classmethod
    def to_storage(cls, name: str, pointer: bool = False) -> str:
        name = key_str(name)
        if name in cls.STORAGE_NAMES:
            return cls.STORAGE_NAMES[name]
        if pointer and not name.startswith("_p_"):
            return f"_p_{name}"
        return name

    @classmethod
    def from_storage(cls, name: str) -> str:
        name = key_str(name)
        if name in cls.WIRE_NAMES:
            return cls.WIRE_NAMES[name]
        if name.startswith("_p_"):
            return name[3:]
        return name


# ----------------------------------------------------------------------
# Dates
# ----------------------------------------------------------------------

def _parse_iso(text: str) -> datetime:
    raw = text.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ConversionError(f"not an ISO-8601 date: {text!r}") from exc
    return _as_utc(parsed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_datetime(value: Any) -> datetime:
    """
    Convert any supported date shape to an aware UTC datetime.

    Accepted, in this order: a tagged date mapping (string or WireKey keys),
    datetime, date, ISO-8601 string, int epoch seconds. Everything else raises
    ConversionError.
    """
    if isinstance(value, Mapping):
        data = normalize_keys(value)
        if data.get("__type") == "Date" and isinstance(data.get("iso"), str):
            return _parse_iso(data["iso"])
        raise ConversionError(f"mapping is not a tagged date: {value!r}")
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        return _parse_iso(value)
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ConversionError(f"epoch seconds out of range: {value}") from exc
    raise ConversionError(f"cannot convert {type(value).__name__} to a date")


def is_date_value(value: Any) -> bool:
    return isinstance(value, (datetime, date)) or is_tagged(value, "Date")


def iso_format(value: Any) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2023-09-15T12:30:00.000Z."""
    dt = to_datetime(value)
    return f"{dt.strftime('%Y-%m-%dT%H:%M:%S')}.{dt.microsecond // 1000:03d}Z"


def to_wire_date(value: Any) -> Dict[str, str]:
    return {"__type": "Date", "iso": iso_format(value)}


# ----------------------------------------------------------------------
# Pointers and plain values
# ----------------------------------------------------------------------

def is_pointer_value(value: Any) -> bool:
    return isinstance(value, PointerRef) or is_tagged(value, "Pointer")


def to_wire_value(value: Any) -> Any:
    """Application value -> wire value."""
    if isinstance(value, PointerRef):
        return value.to_wire()
    if isinstance(value, (datetime, date)):
        return to_wire_date(value)
    if isinstance(value, Mapping):
        return {key_str(k): to_wire_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire_value(v) for v in value]
    return value


def _check_target(target: str) -> None:
    if target not in TARGETS:
        raise ValueError(f"Unknown encoding target {target!r}; expected one of {TARGETS}")


def _encode_date(value: Any, target: str) -> Any:
    return iso_format(value) if target == "remote" else to_datetime(value)


def _encode_value(value: Any, target: str) -> Any:
    """Tagged objects to their target form, everything else walked recursively."""
    if is_pointer_value(value):
        return PointerRef.coerce(value).to_compact()
    if is_date_value(value):
        return _encode_date(value, target)
    if isinstance(value, Mapping):
        return {key_str(k): _encode_value(v, target) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_value(v, target) for v in value]
    return value


def _encode_membership(items: List[Any], target: str) -> List[Any]:
    # bare ids mixed with pointers borrow the class of the first pointer
    class_name: Optional[str] = None
    for item in items:
        if is_pointer_value(item):
            class_name = PointerRef.coerce(item).class_name
            break

    encoded = []
    for item in items:
        if class_name and isinstance(item, str) and not COMPACT_POINTER_RE.match(item):
            encoded.append(f"{class_name}${item}")
        else:
            encoded.append(_encode_value(item, target))
    return encoded


def _holds_pointer(value: Any) -> bool:
    if is_pointer_value(value):
        return True
    if isinstance(value, Mapping) and not is_tagged(value, "Date"):
        for op_value in value.values():
            if is_pointer_value(op_value):
                return True
            if isinstance(op_value, (list, tuple)) and any(is_pointer_value(v) for v in op_value):
                return True
    return False


def _encode_operand(value: Any, target: str) -> Any:
    if isinstance(value, Mapping) and not is_pointer_value(value) and not is_date_value(value):
        encoded = {}
        for op, op_value in value.items():
            op = key_str(op)
            if op in MEMBERSHIP_OPERATORS and isinstance(op_value, (list, tuple)):
                encoded[op] = _encode_membership(list(op_value), target)
            else:
                encoded[op] = _encode_value(op_value, target)
        return encoded
    return _encode_value(value, target)


def encode_constraints(match: Mapping, target: str = "remote") -> Dict[str, Any]:
    """
    Encode a wire `$match` body for `target`.

    Fields compared against pointers are rewritten to `_p_<field>` with compact
    "Class$id" values; tagged dates become ISO strings (remote) or UTC datetimes
    (storage). Storage encoding also renames objectId/createdAt/updatedAt.
    """
    _check_target(target)
    result: Dict[str, Any] = {}
    for key, value in match.items():
        key = key_str(key)
        if key in LOGICAL_OPERATORS:
            result[key] = [encode_constraints(c, target) for c in value]
            continue
        if key.startswith("$"):
            result[key] = _encode_value(value, target)
            continue

        if _holds_pointer(value):
            name = key if key.startswith("_p_") else f"_p_{key}"
        elif target == "storage":
            name = FieldMapper.to_storage(key)
        else:
            name = key
        result[name] = _encode_operand(value, target)
    return result


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------

def _rename_reference(ref: str) -> str:
    # "$createdAt" -> "$_created_at"; "$$ROOT" and friends are variables, not fields
    if not ref.startswith("$") or ref.startswith("$$"):
        return ref
    head, dot, tail = ref[1:].partition(".")
    return "$" + FieldMapper.to_storage(head) + dot + tail


def _encode_expression(expr: Any, target: str) -> Any:
    if isinstance(expr, str):
        return _rename_reference(expr) if target == "storage" else expr
    if is_pointer_value(expr) or is_date_value(expr):
        return _encode_value(expr, target)
    if isinstance(expr, Mapping):
        return {key_str(k): _encode_expression(v, target) for k, v in expr.items()}
    if isinstance(expr, (list, tuple)):
        return [_encode_expression(v, target) for v in expr]
    return expr


def _encode_projection(body: Mapping, target: str) -> Dict[str, Any]:
    encoded = {}
    for name, spec in body.items():
        name = key_str(name)
        # only inclusion/exclusion flags name stored fields; computed fields keep their name
        if target == "storage" and (isinstance(spec, bool) or spec in (0, 1)):
            name = FieldMapper.to_storage(name)
        encoded[name] = _encode_expression(spec, target)
    return encoded


def encode_stage(stage: Mapping, target: str = "remote") -> Dict[str, Any]:
    """Encode one wire pipeline stage for `target`."""
    _check_target(target)
    encoded: Dict[str, Any] = {}
    for op, body in normalize_keys(stage).items():
        if op == "$match":
            encoded[op] = encode_constraints(body, target)
        elif op == "$sort":
            encoded[op] = {
                (FieldMapper.to_storage(k) if target == "storage" else key_str(k)): v
                for k, v in body.items()
            }
        elif op == "$project":
            encoded[op] = _encode_projection(body, target)
        elif op in ("$group", "$unwind", "$addFields"):
            encoded[op] = _encode_expression(body, target)
        elif op in ("$count", "$skip", "$limit"):
            encoded[op] = body
        else:
            encoded[op] = _encode_value(body, target)
    return encoded


def encode_pipeline(pipeline: List[Mapping], target: str = "remote") -> List[Dict[str, Any]]:
    encoded = [encode_stage(stage, target) for stage in pipeline]
    logger.debug(f"Encoded {len(encoded)} stages for {target}")
    return encoded


# ----------------------------------------------------------------------
# Storage documents
# ----------------------------------------------------------------------

def _acl_to_wire(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return value
    acl = {}
    for entity, perms in value.items():
        if not isinstance(perms, Mapping):
            continue
        perms = normalize_keys(perms)
        parsed = {}
        if perms.get("r") is True or perms.get("read") is True:
            parsed["read"] = True
        if perms.get("w") is True or perms.get("write") is True:
            parsed["write"] = True
        if parsed:
            acl[key_str(entity)] = parsed
    return acl


def _storage_date_to_wire(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return to_wire_date(value)
    if isinstance(value, str):
        return {"__type": "Date", "iso": value}
    return value


def _storage_pointer_to_wire(value: Any) -> Any:
    if isinstance(value, str) and "$" in value:
        class_name, object_id = value.split("$", 1)
        return {"__type": "Pointer", "className": class_name, "objectId": object_id}
    return value


def _storage_value_to_wire(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return to_wire_date(value)
    if isinstance(value, Mapping):
        data = normalize_keys(value)
        if "__type" in data:
            return data
        if "_id" in data:
            return document_to_wire(data)
        return {k: _storage_value_to_wire(v) for k, v in data.items()}
    if isinstance(value, (list, tuple)):
        return [_storage_value_to_wire(v) for v in value]
    return value


def document_to_wire(doc: Any, class_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Convert a MongoDB document to the wire (REST) shape.

    `_id` -> objectId, `_created_at`/`_updated_at` -> tagged dates, `_p_x` -> x as a
    pointer, `_acl` -> ACL, `_included_x` -> x as an embedded document. Any other
    underscore field is internal and dropped.
    """
    if not isinstance(doc, Mapping):
        return None

    result: Dict[str, Any] = {}
    for key, value in doc.items():
        key = key_str(key)
        if key == "_id":
            result["objectId"] = str(value) if isinstance(value, ObjectId) else value
        elif key == "_created_at":
            result["createdAt"] = _storage_date_to_wire(value)
        elif key == "_updated_at":
            result["updatedAt"] = _storage_date_to_wire(value)
        elif key.startswith("_p_"):
            result[key[3:]] = _storage_pointer_to_wire(value)
        elif key == "_acl":
            result["ACL"] = _acl_to_wire(value)
        elif key.startswith("_included_"):
            name = key[len("_included_"):]
            result[name] = document_to_wire(value) if isinstance(value, Mapping) else value
        elif key.startswith("_"):
            continue
        else:
            result[key] = _storage_value_to_wire(value)

    if class_name:
        result["className"] = class_name
    return result
