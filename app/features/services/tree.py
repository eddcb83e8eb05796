"""
Resource tree assembly.

Turns the three flat catalog lists into a forest of ResourceNode, one root
per service. Pure transform, safe to call on every catalog refresh.
"""
import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, Field

from app.features.services.identifiers import ResourceId, ResourceKind
from app.utils import get_logger


log = get_logger(__name__)

_DIGITS = re.compile(r"(\d+)")


class ResourceNode(BaseModel):
    """One node of the resource tree."""
    id: str
    label: str
    kind: ResourceKind
    parent_id: str | None = None
    children: list["ResourceNode"] = Field(default_factory=list)


def natural_key(value: Any) -> tuple:
    """
    Sort key comparing digit runs numerically, so "9" < "10" and
    "a2" < "a10".
    """
    parts = _DIGITS.split(str(value))
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part.lower()) for part in parts)


def _label(entity: Mapping[str, Any], language: str) -> str:
    other = "en" if language == "ar" else "ar"
    return (
        entity.get(f"label_{language}")
        or entity.get(f"label_{other}")
        or str(entity.get("id"))
    )


def _raw_id(entity: Mapping[str, Any]) -> str | None:
    raw = entity.get("id")
    if raw is None or str(raw).strip() == "":
        return None
    return str(raw)


def build_resource_tree(
    services: Iterable[Mapping[str, Any]],
    pages: Iterable[Mapping[str, Any]],
    actions: Iterable[Mapping[str, Any]],
    language: str = "ar",
) -> list[ResourceNode]:
    """
    Build the service -> page/action forest.

    Roots are ordered by the service's raw id with numeric-aware comparison.
    Inside a service, pages come before actions, each group in input order.
    Records without an id or whose parent service does not exist are
    dropped; malformed input yields an empty forest rather than an error.
    """
    try:
        roots: dict[str, ResourceNode] = {}
        for service in services:
            raw_id = _raw_id(service)
            if raw_id is None:
                continue
            roots[raw_id] = ResourceNode(
                id=str(ResourceId(ResourceKind.SERVICE, raw_id)),
                label=_label(service, language),
                kind=ResourceKind.SERVICE,
            )

        for kind, entities in ((ResourceKind.PAGE, pages), (ResourceKind.ACTION, actions)):
            for entity in entities:
                raw_id = _raw_id(entity)
                parent = roots.get(str(entity.get("service_id")))
                if raw_id is None or parent is None:
                    log.debug(f"Dropping {kind.value} {entity.get('id')!r}: unknown parent service")
                    continue
                parent.children.append(ResourceNode(
                    id=str(ResourceId(kind, raw_id)),
                    label=_label(entity, language),
                    kind=kind,
                    parent_id=parent.id,
                ))

        return [roots[raw_id] for raw_id in sorted(roots, key=natural_key)]
    except (AttributeError, TypeError, ValueError) as e:
        log.warning(f"Could not build resource tree: {e}")
        return []


def flatten(tree: Iterable[ResourceNode]) -> Iterator[ResourceNode]:
    """Depth-first walk over every node."""
    for node in tree:
        yield node
        yield from flatten(node.children)


def parent_index(tree: Iterable[ResourceNode]) -> dict[str, str]:
    """Map of child resource id -> parent service id."""
    return {node.id: node.parent_id for node in flatten(tree) if node.parent_id}


def parent_service_of(resource_id: str, tree: Iterable[ResourceNode]) -> str | None:
    """Service id a page/action hangs off; a service is its own parent."""
    for root in tree:
        if root.id == resource_id:
            return root.id
        if any(child.id == resource_id for child in root.children):
            return root.id
    return None
