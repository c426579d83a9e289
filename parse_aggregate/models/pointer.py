import re
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

# ClassName$objectId; system classes carry a leading underscore (_User$abc)
COMPACT_POINTER_RE = re.compile(r"^(_?[A-Za-z]\w*)\$([\w\-]+)$")


class WireKey(str, Enum):
    """Keys of the tagged wire objects.

    Producers may key tagged objects either with plain strings or with these members;
    both are read identically.
    """
    TYPE = "__type"
    CLASS_NAME = "className"
    OBJECT_ID = "objectId"
    ISO = "iso"


def key_str(key: Any) -> str:
    """Normalise a mapping key to its string form."""
    if isinstance(key, Enum):
        return str(key.value)
    return str(key)


def normalize_keys(obj: Mapping) -> Dict[str, Any]:
    return {key_str(k): v for k, v in obj.items()}


def is_tagged(value: Any, type_name: str) -> bool:
    """True if `value` is a wire object tagged `{"__type": type_name}`."""
    if not isinstance(value, Mapping):
        return False
    return normalize_keys(value).get("__type") == type_name


class PointerRef(BaseModel):
    """In-memory form of a reference to another object."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    class_name: str = Field(..., min_length=1)
    object_id: str = Field(..., min_length=1)

    def to_wire(self) -> Dict[str, str]:
        return {"__type": "Pointer", "className": self.class_name, "objectId": self.object_id}

    def to_compact(self) -> str:
        return f"{self.class_name}${self.object_id}"

    @classmethod
    def from_wire(cls, value: Mapping) -> "PointerRef":
        data = normalize_keys(value)
        if data.get("__type") != "Pointer" or not data.get("className") or not data.get("objectId"):
            raise ValueError(f"Not a wire pointer: {value!r}")
        return cls(class_name=data["className"], object_id=data["objectId"])

    @classmethod
    def from_compact(cls, value: str) -> "PointerRef":
        m = COMPACT_POINTER_RE.match(value) if isinstance(value, str) else None
        if not m:
            raise ValueError(f"Not a compact pointer string: {value!r}")
        return cls(class_name=m.group(1), object_id=m.group(2))

    @classmethod
    def coerce(cls, value: Any) -> Optional["PointerRef"]:
        """Read a PointerRef, a wire pointer or a compact string; None if `value` is none of them."""
        if isinstance(value, PointerRef):
            return value
        if is_tagged(value, "Pointer"):
            return cls.from_wire(value)
        if isinstance(value, str) and COMPACT_POINTER_RE.match(value):
            return cls.from_compact(value)
        return None

    def __str__(self) -> str:
        return f"{self.class_name}#{self.object_id}"
