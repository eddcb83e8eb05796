"""Distribution filter tests."""

import pytest

from app.core.errors import DelegationValidationError
from app.features.organizations.distribution import (
    ValidScopes,
    compute_valid_scopes,
    ensure_scope_offerable,
    valid_scopes_for,
)
from app.features.permissions.scopes import AccessScope, ControlScope


@pytest.mark.unit
class TestComputeValidScopes:

    def test_no_distribution_is_empty(self):
        valid = compute_valid_scopes([], ["c1"], ["s1"])
        assert valid.is_empty

    def test_inactive_entities_excluded(self):
        valid = compute_valid_scopes(
            [{"company_id": "c1", "section_id": "s1"}, {"company_id": "c2", "section_id": None}],
            active_company_ids=["c1"],
            active_section_ids=["s2"],
        )
        assert valid == ValidScopes(companies=frozenset({"c1"}), sections=frozenset())

    def test_allows(self):
        valid = ValidScopes(companies=frozenset({"c1"}), sections=frozenset({"s1"}))
        assert valid.allows(AccessScope())
        assert valid.allows(AccessScope("c1", "s1"))
        assert not valid.allows(AccessScope("c2"))
        assert not valid.allows(AccessScope("c1", "s2"))
        assert valid.allows(ControlScope(sector_id="anything"))


class TestValidScopesFor:

    async def test_job_without_distribution(self, store, organization):
        assert (await valid_scopes_for(store, "j-clerk")).is_empty

    async def test_active_distribution_only(self, store, organization):
        valid = await valid_scopes_for(store, "j-guard")
        assert valid.companies == frozenset({"c1"})
        assert valid.sections == frozenset({"s1"})

    async def test_follows_distribution_changes(self, store, organization):
        await store.create("job_distribution", {"job_id": "j-clerk", "section_id": "s2"})
        valid = await valid_scopes_for(store, "j-clerk")
        assert valid.companies == frozenset()
        assert valid.sections == frozenset({"s2"})

    async def test_ensure_scope_offerable(self, store, organization):
        await ensure_scope_offerable(store, "j-guard", AccessScope("c1", "s1"))
        await ensure_scope_offerable(store, "j-clerk", AccessScope())
        await ensure_scope_offerable(store, None, ControlScope())
        with pytest.raises(DelegationValidationError):
            await ensure_scope_offerable(store, "j-guard", AccessScope("c2"))
        with pytest.raises(DelegationValidationError):
            await ensure_scope_offerable(store, "j-clerk", AccessScope("c1"))
        with pytest.raises(DelegationValidationError):
            await ensure_scope_offerable(store, None, AccessScope(section_id="s1"))
