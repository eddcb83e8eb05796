"""
Error taxonomy shared by the permission and delegation features.

Resolution never raises these: it fails closed to "deny". Administration
paths raise them and app.main maps them to HTTP responses.
"""
from typing import Any, Hashable


class AccessError(Exception):
    """Base class for access-management errors."""


class NotFound(AccessError):
    """A referenced job, user, resource or record does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id!r} not found")


class DelegationValidationError(AccessError, ValueError):
    """A grant or rule was rejected before any write was attempted."""


class UnknownProcedure(AccessError, LookupError):
    """No remote procedure is registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown procedure {name!r}")


class PartialWriteFailure(AccessError):
    """
    One or more operations of a batch save failed after others succeeded.

    Operations that did succeed are not rolled back. `failed` maps each
    failed key to the exception it raised; `created` maps keys whose grant
    went through to the new record id.
    """

    def __init__(
        self,
        failed: dict[Hashable, BaseException],
        succeeded: list[Hashable],
        created: dict[Hashable, str] | None = None,
    ):
        self.failed = failed
        self.succeeded = succeeded
        self.created = dict(created or {})
        keys = ", ".join(sorted(str(key) for key in failed))
        super().__init__(f"{len(failed)} operation(s) failed: {keys}")
