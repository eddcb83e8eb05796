"""Access and control scope matching tests."""

import pytest

from app.core.errors import DelegationValidationError
from app.features.permissions.scopes import AccessScope, ControlScope, SubjectContext, clean_id


def subject(company=None, section=None) -> SubjectContext:
    return SubjectContext(user_id="u1", job_id="j1", company_id=company, section_id=section)


@pytest.mark.unit
class TestAccessScope:

    def test_empty_scope_is_global(self):
        scope = AccessScope()
        assert scope.is_global
        assert scope.matches(subject())
        assert scope.matches(subject("c1", "s1"))

    def test_company_scope(self):
        scope = AccessScope(company_id="c1")
        assert scope.matches(subject("c1"))
        assert not scope.matches(subject("c2"))
        assert not scope.matches(subject())

    def test_populated_fields_are_conjunctive(self):
        scope = AccessScope(company_id="c1", section_id="s1")
        assert scope.matches(subject("c1", "s1"))
        assert not scope.matches(subject("c1", "s2"))
        assert not scope.matches(subject("c2", "s1"))

    def test_blank_ids_are_unset(self):
        assert AccessScope(company_id="  ", section_id="").is_global
        assert clean_id(" 7 ") == "7"
        assert clean_id(7) == "7"

    def test_record_forms(self):
        scope = AccessScope.from_record({"scope_company_id": "c1", "scope_section_id": None})
        assert scope == AccessScope("c1")
        assert scope.to_record() == {"scope_company_id": "c1", "scope_section_id": None}

    def test_list_form_uses_first_entry(self):
        scope = AccessScope.from_lists({"companies": ["c1", "c9"], "sections": []})
        assert scope == AccessScope("c1")
        assert scope.to_lists() == {"companies": ["c1"], "sections": []}
        assert AccessScope.from_lists(None).is_global


@pytest.mark.unit
class TestControlScope:

    def test_empty_scope_matches_anywhere(self):
        assert ControlScope().is_global
        assert ControlScope().matches(company_id="c1", section_id="s1")

    def test_department_and_sector(self):
        scope = ControlScope(sector_id="sec1", department_id="d1")
        assert scope.matches(company_id="c1", sector_id="sec1", department_id="d1")
        assert not scope.matches(company_id="c1", sector_id="sec1", department_id="d2")
        assert not scope.matches(company_id="c1")

    def test_restricted_to_grantor_company(self):
        scope = ControlScope(restricted_to_grantor_company=True)
        assert not scope.is_global
        assert scope.matches(company_id="c1", grantor_company_id="c1")
        assert not scope.matches(company_id="c2", grantor_company_id="c1")
        # unknown grantor company does not restrict
        assert scope.matches(company_id="c2")

    def test_restricted_scope_cannot_name_a_company(self):
        with pytest.raises(DelegationValidationError):
            ControlScope(company_id="c1", restricted_to_grantor_company=True)

    def test_record_round_trip_keeps_restriction(self):
        scope = ControlScope(section_id="s1", restricted_to_grantor_company=True)
        record = scope.to_record()
        assert record["restricted_to_company"] is True
        assert ControlScope.from_record(record) == scope
