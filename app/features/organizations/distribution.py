"""
Distribution filter: which companies and sections a job may be scoped to.

A job's valid scopes are the companies/sections referenced by its
distribution records that are still active. A job with no valid scopes can
only be delegated globally.
"""
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import DelegationValidationError
from app.core.records.store import RecordStore
from app.features.permissions.scopes import AccessScope, ControlScope
from app.utils import get_logger


log = get_logger(__name__)

DISTRIBUTION = "job_distribution"
COMPANIES = "companies"
SECTIONS = "sections"


@dataclass(frozen=True)
class ValidScopes:
    companies: frozenset[str] = field(default_factory=frozenset)
    sections: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.companies and not self.sections

    def allows(self, scope: AccessScope | ControlScope) -> bool:
        """The global scope is always offerable; anything else must be distributed."""
        if scope.company_id is not None and scope.company_id not in self.companies:
            return False
        if scope.section_id is not None and scope.section_id not in self.sections:
            return False
        return True


def compute_valid_scopes(
    distributions: Iterable[Mapping[str, Any]],
    active_company_ids: Iterable[str],
    active_section_ids: Iterable[str],
) -> ValidScopes:
    """Union of distributed ids intersected with the active entities."""
    companies: set[str] = set()
    sections: set[str] = set()
    for record in distributions:
        if record.get("company_id"):
            companies.add(str(record["company_id"]))
        if record.get("section_id"):
            sections.add(str(record["section_id"]))
    return ValidScopes(
        companies=frozenset(companies & {str(c) for c in active_company_ids}),
        sections=frozenset(sections & {str(s) for s in active_section_ids}),
    )


async def valid_scopes_for(store: RecordStore, job_id: str) -> ValidScopes:
    distributions = await store.query(DISTRIBUTION, {"job_id": str(job_id)})
    if not distributions:
        return ValidScopes()
    companies = await store.query(COMPANIES, {"is_active": True})
    sections = await store.query(SECTIONS, {"is_active": True})
    valid = compute_valid_scopes(
        distributions,
        (c["id"] for c in companies),
        (s["id"] for s in sections),
    )
    log.debug(f"Valid scopes for job {job_id}: {valid}")
    return valid


async def ensure_scope_offerable(store: RecordStore, job_id: str | None, scope: AccessScope | ControlScope) -> None:
    """
    Reject a scope that lies outside the job's distribution. Without a job
    only the global scope is offerable.
    """
    if scope.company_id is None and scope.section_id is None:
        return
    valid = await valid_scopes_for(store, job_id) if job_id else ValidScopes()
    if not valid.allows(scope):
        raise DelegationValidationError(
            f"Scope {scope} is outside the distribution of job {job_id}"
        )
