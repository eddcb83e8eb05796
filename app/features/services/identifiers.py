"""
Composite resource identifiers.

Every node of the resource tree is addressed as "<prefix>:<raw id>":
"s:5" is service 5, "ss:12" is page 12, "sss:3" is action 3.
"""
import enum
from dataclasses import dataclass

from app.core.errors import DelegationValidationError


class ResourceKind(str, enum.Enum):
    """Level of a node in the resource tree."""
    SERVICE = "service"
    PAGE = "page"
    ACTION = "action"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES = {
    ResourceKind.SERVICE: "s",
    ResourceKind.PAGE: "ss",
    ResourceKind.ACTION: "sss",
}
_KINDS_BY_PREFIX = {prefix: kind for kind, prefix in _PREFIXES.items()}


@dataclass(frozen=True)
class ResourceId:
    kind: ResourceKind
    raw_id: str

    def format(self) -> str:
        return f"{self.kind.prefix}:{self.raw_id}"

    __str__ = format

    @classmethod
    def of(cls, kind: ResourceKind, raw_id) -> "ResourceId":
        return cls(kind, str(raw_id))


def try_parse_resource_id(text: str | None) -> ResourceId | None:
    """Parse "s:5" style ids; None for anything malformed."""
    if not text or not isinstance(text, str):
        return None
    prefix, sep, raw_id = text.partition(":")
    kind = _KINDS_BY_PREFIX.get(prefix)
    if not sep or kind is None or not raw_id.strip():
        return None
    return ResourceId(kind, raw_id.strip())


def parse_resource_id(text: str) -> ResourceId:
    """Parse a composite id or raise DelegationValidationError."""
    resource_id = try_parse_resource_id(text)
    if resource_id is None:
        raise DelegationValidationError(f"Malformed resource id {text!r}")
    return resource_id
