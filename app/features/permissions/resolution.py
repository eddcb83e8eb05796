"""
Permission resolution.

A PermissionIndex holds every job permission, user exception and access
delegation grant in memory, keyed by subject and resource, and is kept
current by change-feed events. ResolutionService answers
`resolve(subject, resource_id)` from the index alone:

1. super admins are always allowed
2. a user exception decides outright (granted -> allow, denied -> deny)
3. an access grant delegated to the user allows if its scope matches
4. a job permission, native or delegated, allows if its scope matches
5. anything else is denied
"""
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from app.core.records.feed import ChangeEvent, ChangeFeed, ChangeType, Subscription
from app.core.records.store import RecordStore
from app.features.delegation.models import DelegationKind, OwnerType
from app.features.permissions.models import ExceptionState
from app.features.permissions.scopes import AccessScope, SubjectContext
from app.features.services.identifiers import try_parse_resource_id
from app.utils import get_logger


log = get_logger(__name__)

JOB_PERMISSIONS = "job_permissions"
USER_EXCEPTIONS = "user_permissions"
RESOURCE_GRANTS = "delegation_resources"

# subject id -> resource id -> record id -> value
_Table = dict[str, dict[str, dict[str, Any]]]


def _table() -> _Table:
    return defaultdict(lambda: defaultdict(dict))


class PermissionIndex:
    """
    In-memory view of the records resolution depends on.

    `apply(event)` replaces whatever was cached for the event's record id,
    so replaying an event is harmless.
    """

    collections = (JOB_PERMISSIONS, USER_EXCEPTIONS, RESOURCE_GRANTS)

    def __init__(self):
        self._records: dict[str, dict[str, dict[str, Any]]] = {c: {} for c in self.collections}
        self._job_grants: _Table = _table()
        self._exceptions: _Table = _table()
        self._delegated: dict[OwnerType, _Table] = {OwnerType.JOB: _table(), OwnerType.USER: _table()}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def apply(self, event: ChangeEvent) -> None:
        if event.collection not in self._records:
            return
        self._forget(event.collection, event.id)
        if event.type != ChangeType.REMOVED:
            self._remember(event.collection, event.id, event.data)

    def reset(self, records: dict[str, Iterable[dict[str, Any]]]) -> None:
        """Replace the whole index with freshly queried records."""
        self.__init__()
        for collection, rows in records.items():
            for row in rows:
                if row.get("id") is not None:
                    self._remember(collection, str(row["id"]), row)

    async def load(self, store: RecordStore) -> None:
        records = {c: await store.query(c) for c in self.collections}
        self.reset(records)
        counts = ", ".join(f"{c}={len(rows)}" for c, rows in records.items())
        log.info(f"Permission index loaded: {counts}")

    def bind(self, feed: ChangeFeed) -> list[Subscription]:
        return [feed.subscribe(c, None, self.apply) for c in self.collections]

    def _bucket(self, collection: str, record: dict[str, Any]) -> tuple[_Table, str] | None:
        if collection == JOB_PERMISSIONS:
            return self._job_grants, record.get("job_id")
        if collection == USER_EXCEPTIONS:
            return self._exceptions, record.get("user_id")
        if record.get("kind") != DelegationKind.ACCESS.value:
            return None
        try:
            owner_type = OwnerType(record.get("owner_type"))
        except ValueError:
            return None
        return self._delegated[owner_type], record.get("owner_id")

    def _remember(self, collection: str, record_id: str, record: dict[str, Any]) -> None:
        self._records[collection][record_id] = dict(record)
        located = self._bucket(collection, record)
        resource_id = record.get("resource_id")
        if located is None or not located[1] or not resource_id:
            return
        table, subject_id = located
        if collection == USER_EXCEPTIONS:
            value = ExceptionState.from_allowed(record.get("is_allowed"))
        else:
            value = AccessScope.from_record(record)
        table[str(subject_id)][str(resource_id)][record_id] = value

    def _forget(self, collection: str, record_id: str) -> None:
        record = self._records[collection].pop(record_id, None)
        if record is None:
            return
        located = self._bucket(collection, record)
        if located is None or not located[1]:
            return
        table, subject_id = located
        by_resource = table.get(str(subject_id))
        if by_resource is None:
            return
        entries = by_resource.get(str(record.get("resource_id")))
        if entries is None:
            return
        entries.pop(record_id, None)
        if not entries:
            del by_resource[str(record.get("resource_id"))]
        if not by_resource:
            del table[str(subject_id)]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _lookup(table: _Table, subject_id: str | None, resource_id: str) -> list[Any]:
        if not subject_id:
            return []
        by_resource = table.get(str(subject_id))
        if not by_resource:
            return []
        return list(by_resource.get(resource_id, {}).values())

    def exception_state(self, user_id: str, resource_id: str) -> ExceptionState:
        """Stored override for (user, resource); any denial outweighs a grant."""
        states = self._lookup(self._exceptions, user_id, resource_id)
        if not states:
            return ExceptionState.INHERIT
        if ExceptionState.DENIED in states:
            return ExceptionState.DENIED
        return ExceptionState.GRANTED

    def job_scopes(self, job_id: str | None, resource_id: str) -> list[AccessScope]:
        """Native and delegated scopes under which a job holds the resource."""
        return (
            self._lookup(self._job_grants, job_id, resource_id)
            + self._lookup(self._delegated[OwnerType.JOB], job_id, resource_id)
        )

    def user_scopes(self, user_id: str, resource_id: str) -> list[AccessScope]:
        """Scopes of access grants delegated directly to the user."""
        return self._lookup(self._delegated[OwnerType.USER], user_id, resource_id)

    def resources_for(self, subject: SubjectContext) -> set[str]:
        """Every resource id some record of the subject mentions."""
        resources: set[str] = set()
        for table, subject_id in (
            (self._job_grants, subject.job_id),
            (self._delegated[OwnerType.JOB], subject.job_id),
            (self._exceptions, subject.user_id),
            (self._delegated[OwnerType.USER], subject.user_id),
        ):
            if subject_id:
                resources.update(table.get(str(subject_id), {}))
        return resources

    def records(self, collection: str) -> list[dict[str, Any]]:
        return list(self._records.get(collection, {}).values())


class ResolutionService:
    """
    Read-side entry point. One instance per process, owning one index.

    Usage:
        service = ResolutionService()
        await service.start(store, feed)
        service.resolve(subject, "ss:12")
    """

    def __init__(self, index: PermissionIndex | None = None):
        self.index = index or PermissionIndex()
        self._subscriptions: list[Subscription] = []

    async def start(self, store: RecordStore, feed: ChangeFeed | None = None) -> None:
        if feed is not None:
            # events applied before load() completes are overwritten by reset()
            self._subscriptions = self.index.bind(feed)
        await self.index.load(store)

    def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def resolve(self, subject: SubjectContext, resource_id: str) -> bool:
        """
        Effective decision for one subject and one resource.

        Never raises: malformed ids and unexpected faults resolve to deny.
        """
        try:
            return self._resolve(subject, resource_id)
        except Exception:
            log.warning(f"Resolution failed for {subject.user_id} on {resource_id}; denying", exc_info=True)
            return False

    def _resolve(self, subject: SubjectContext, resource_id: str) -> bool:
        if subject.is_super_admin:
            return True
        if try_parse_resource_id(resource_id) is None:
            log.debug(f"Malformed resource id {resource_id!r}; denying")
            return False

        state = self.index.exception_state(subject.user_id, resource_id)
        if state is ExceptionState.GRANTED:
            log.debug(f"User {subject.user_id} granted {resource_id} by exception")
            return True
        if state is ExceptionState.DENIED:
            log.debug(f"User {subject.user_id} denied {resource_id} by exception")
            return False

        if any(scope.matches(subject) for scope in self.index.user_scopes(subject.user_id, resource_id)):
            log.debug(f"User {subject.user_id} granted {resource_id} by delegation")
            return True

        allowed = any(scope.matches(subject) for scope in self.index.job_scopes(subject.job_id, resource_id))
        log.debug(f"User {subject.user_id} {'granted' if allowed else 'denied'} {resource_id} via job {subject.job_id}")
        return allowed

    def effective_permissions(
        self,
        subject: SubjectContext,
        catalog_ids: Iterable[str] = (),
    ) -> dict[str, bool]:
        """
        Map of resource id -> decision for everything the subject's records
        mention plus `catalog_ids`. Super admins get every catalog id.
        """
        effective: dict[str, bool] = {"general_access": True}
        if subject.is_super_admin:
            effective.update({resource_id: True for resource_id in catalog_ids})
            return effective

        candidates = set(catalog_ids) | self.index.resources_for(subject)
        for resource_id in sorted(candidates):
            effective[resource_id] = self.resolve(subject, resource_id)
        return effective
