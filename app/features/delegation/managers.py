"""
Delegation managers.

ResourceGrantManager manages delegated resources (delegation_resources),
ScopeRuleManager manages delegation rules (delegation_scopes). Each is
instantiated per kind, so the four editors of the admin UI are:

    ResourceGrantManager(store, DelegationKind.ACCESS)   # extra resources
    ResourceGrantManager(store, DelegationKind.CONTROL)  # resources the owner may hand out
    ScopeRuleManager(store, DelegationKind.ACCESS)
    ScopeRuleManager(store, DelegationKind.CONTROL)      # jobs/users the owner may administer

The store is append/delete-only here, so a scope change is a revoke followed
by a grant. Neither that nor a batch save is atomic: a failure part way
leaves the earlier operations applied.
"""
import asyncio
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from app.core.errors import DelegationValidationError, NotFound, PartialWriteFailure
from app.core.records.store import RecordStore
from app.features.delegation.models import ALL_JOBS, DelegationKind, OwnerType
from app.features.permissions.scopes import AccessScope, ControlScope, clean_id
from app.features.services.identifiers import parse_resource_id
from app.utils import get_logger


log = get_logger(__name__)

RESOURCE_GRANTS = "delegation_resources"
DELEGATION_RULES = "delegation_scopes"

V = TypeVar("V")


@dataclass(frozen=True)
class Owner:
    """Job or user a delegation record belongs to."""
    type: OwnerType
    id: str

    def __post_init__(self):
        object.__setattr__(self, "type", OwnerType(self.type))
        if not clean_id(self.id):
            raise DelegationValidationError("Delegation owner id is required")

    @classmethod
    def job(cls, job_id: str) -> "Owner":
        return cls(OwnerType.JOB, job_id)

    @classmethod
    def user(cls, user_id: str) -> "Owner":
        return cls(OwnerType.USER, user_id)

    def to_record(self) -> dict[str, str]:
        return {"owner_type": self.type.value, "owner_id": self.id}


@dataclass(frozen=True)
class ScopeRule:
    """
    Who a rule lets its owner administer, and where.

    A rule targets a job (or every job, via ALL_JOBS) or one user.
    """
    target_job_id: str | None = None
    target_user_id: str | None = None
    scope: ControlScope = field(default_factory=ControlScope)

    def __post_init__(self):
        object.__setattr__(self, "target_job_id", clean_id(self.target_job_id))
        object.__setattr__(self, "target_user_id", clean_id(self.target_user_id))
        if self.target_job_id is None and self.target_user_id is None:
            raise DelegationValidationError("A delegation rule needs a target job or user")

    @property
    def targets_all_jobs(self) -> bool:
        return self.target_job_id == ALL_JOBS

    def covers_job(self, job_id: str | None) -> bool:
        if self.targets_all_jobs:
            return True
        return job_id is not None and self.target_job_id == str(job_id)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ScopeRule":
        return cls(
            target_job_id=record.get("target_job_id"),
            target_user_id=record.get("target_user_id"),
            scope=ControlScope.from_record(record),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "target_job_id": self.target_job_id,
            "target_user_id": self.target_user_id,
            **self.scope.to_record(),
        }


@dataclass(frozen=True)
class Entry(Generic[V]):
    """
    One keyed value of an editable snapshot, with the records backing it.

    A resource granted several times to one owner is a single entry: the
    first record is `record_id`, the rest are `other_ids`.
    """
    value: V
    record_id: str | None = None
    other_ids: tuple[str, ...] = ()

    @property
    def record_ids(self) -> tuple[str, ...]:
        first = (self.record_id,) if self.record_id else ()
        return first + tuple(self.other_ids)


Snapshot = Mapping[str, Entry]


class _DelegationManager(Generic[V]):
    collection: str

    def __init__(self, store: RecordStore, kind: DelegationKind, actor_id: str | None = None):
        self.store = store
        self.kind = DelegationKind(kind)
        self.actor_id = actor_id

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind={self.kind.value})>"

    def _owner_filter(self, owner: Owner) -> dict[str, str]:
        return {"kind": self.kind.value, **owner.to_record()}

    async def list_for(self, owner: Owner) -> list[dict[str, Any]]:
        return await self.store.query(self.collection, self._owner_filter(owner))

    async def revoke(self, owner: Owner, record_id: str) -> None:
        """Delete exactly one record of this owner."""
        rows = await self.store.query(self.collection, {"id": record_id})
        if not rows:
            raise NotFound(self.collection, record_id)
        record = rows[0]
        if (
            record.get("kind") != self.kind.value
            or record.get("owner_type") != owner.type.value
            or record.get("owner_id") != owner.id
        ):
            raise DelegationValidationError(f"Record {record_id} does not belong to {owner.type.value} {owner.id}")
        await self.store.delete(self.collection, record_id)
        log.info(f"Revoked {self.kind.value} {self.collection}:{record_id} from {owner.type.value} {owner.id}")

    def snapshot(self, records: list[dict[str, Any]]) -> dict[str, Entry[V]]:
        raise NotImplementedError

    def stored_key(self, key: str, record_id: str) -> str:
        """Snapshot key under which the record created for `key` appears."""
        return key

    def _validate(self, key: str, value: V) -> None:
        pass

    async def _create(self, owner: Owner, key: str, value: V) -> str:
        raise NotImplementedError

    async def save_batch(self, owner: Owner, baseline: Snapshot, edited: Snapshot) -> dict[str, str]:
        """
        Write the difference between two snapshots.

        Every record backing a key removed or changed is revoked, one grant
        is issued per key added or changed, all awaited concurrently.
        Returns key -> new record id.

        Raises:
            DelegationValidationError: before any write, if an added value is invalid
            PartialWriteFailure: if any operation failed; the others stay applied
                and the ids they created are on the exception's `created`
        """
        revokes: list[tuple[str, str]] = []
        grants: list[tuple[str, V]] = []
        for key, entry in baseline.items():
            current = edited.get(key)
            if current is None or current.value != entry.value:
                revokes.extend((key, record_id) for record_id in entry.record_ids)
        for key, entry in edited.items():
            previous = baseline.get(key)
            if previous is None or previous.value != entry.value:
                self._validate(key, entry.value)
                grants.append((key, entry.value))

        if not revokes and not grants:
            return {}

        operations: list[tuple[str, Awaitable[Any]]] = (
            [(key, self.revoke(owner, record_id)) for key, record_id in revokes]
            + [(key, self._create(owner, key, value)) for key, value in grants]
        )
        results = await asyncio.gather(*(op for _, op in operations), return_exceptions=True)

        failed: dict[str, BaseException] = {}
        created: dict[str, str] = {}
        for (key, _), result in zip(operations, results):
            if isinstance(result, BaseException):
                failed.setdefault(key, result)
            elif isinstance(result, str):
                created[key] = result

        if failed:
            succeeded = [key for key, _ in operations if key not in failed]
            log.warning(
                f"Batch save for {owner.type.value} {owner.id} partially failed: "
                f"{len(failed)} key(s) failed, {len(set(succeeded))} succeeded"
            )
            raise PartialWriteFailure(failed, sorted(set(succeeded)), created)

        log.info(
            f"Saved {self.kind.value} {self.collection} for {owner.type.value} {owner.id}: "
            f"{len(revokes)} revoked, {len(grants)} granted"
        )
        return created


class ResourceGrantManager(_DelegationManager[AccessScope]):
    """Delegated resources of one kind, keyed by resource id."""

    collection = RESOURCE_GRANTS

    def _validate(self, key: str, value: AccessScope) -> None:
        parse_resource_id(key)

    async def _create(self, owner: Owner, key: str, value: AccessScope) -> str:
        return await self.store.create(self.collection, {
            **self._owner_filter(owner),
            "resource_id": key,
            "created_by": self.actor_id,
            **value.to_record(),
        })

    async def grant(self, owner: Owner, resource_id: str, scope: AccessScope | None = None) -> str:
        """Append one grant. No dedup against existing records."""
        self._validate(resource_id, scope)
        record_id = await self._create(owner, resource_id, scope or AccessScope())
        log.info(f"Granted {self.kind.value} {resource_id} to {owner.type.value} {owner.id}")
        return record_id

    async def replace_scope(self, owner: Owner, resource_id: str, new_scope: AccessScope) -> str:
        """
        Revoke every grant of `resource_id` to the owner, then grant it anew
        with `new_scope`. A failure between the two leaves the resource
        ungranted.
        """
        parse_resource_id(resource_id)
        existing = [r for r in await self.list_for(owner) if r.get("resource_id") == resource_id]
        if not existing:
            raise NotFound(f"{self.kind.value} grant", resource_id)
        for record in existing:
            await self.revoke(owner, record["id"])
        return await self.grant(owner, resource_id, new_scope)

    def snapshot(self, records: list[dict[str, Any]]) -> dict[str, Entry[AccessScope]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for record in records:
            if record.get("resource_id"):
                grouped.setdefault(record["resource_id"], []).append(record)
        return {
            resource_id: Entry(
                AccessScope.from_record(rows[0]),
                rows[0]["id"],
                tuple(row["id"] for row in rows[1:]),
            )
            for resource_id, rows in grouped.items()
        }


class ScopeRuleManager(_DelegationManager[ScopeRule]):
    """Delegation rules of one kind, keyed by record id."""

    collection = DELEGATION_RULES

    def stored_key(self, key: str, record_id: str) -> str:
        return record_id

    async def _create(self, owner: Owner, key: str, value: ScopeRule) -> str:
        return await self.store.create(self.collection, {
            **self._owner_filter(owner),
            "created_by": self.actor_id,
            **value.to_record(),
        })

    async def grant(self, owner: Owner, rule: ScopeRule) -> str:
        record_id = await self._create(owner, "", rule)
        target = rule.target_user_id or rule.target_job_id
        log.info(f"Granted {self.kind.value} rule over {target} to {owner.type.value} {owner.id}")
        return record_id

    async def replace_scope(self, owner: Owner, record_id: str, new_scope: ControlScope) -> str:
        """Revoke one rule and grant one with the same target and `new_scope`."""
        rows = await self.store.query(self.collection, {"id": record_id})
        if not rows:
            raise NotFound(self.collection, record_id)
        old = ScopeRule.from_record(rows[0])
        replacement = ScopeRule(old.target_job_id, old.target_user_id, new_scope)
        await self.revoke(owner, record_id)
        return await self.grant(owner, replacement)

    def snapshot(self, records: list[dict[str, Any]]) -> dict[str, Entry[ScopeRule]]:
        snapshot: dict[str, Entry[ScopeRule]] = {}
        for record in records:
            try:
                snapshot[record["id"]] = Entry(ScopeRule.from_record(record), record["id"])
            except DelegationValidationError:
                log.warning(f"Ignoring malformed delegation rule {record.get('id')}")
        return snapshot


def manager_for(store: RecordStore, kind: DelegationKind, records: str, actor_id: str | None = None):
    """Pick a manager by kind and record family ("resources" or "scopes")."""
    if records == "resources":
        return ResourceGrantManager(store, kind, actor_id)
    if records == "scopes":
        return ScopeRuleManager(store, kind, actor_id)
    raise ValueError(f"Unknown delegation records {records!r}")
