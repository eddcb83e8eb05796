"""
Scope value objects and the identity context they are matched against.

An AccessScope restricts a grant to one company and/or one section; an empty
scope is global. A ControlScope is what a delegation rule lets its owner
administer, down to sector/department granularity, optionally pinned to the
grantor's own company.
"""
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from app.core.errors import DelegationValidationError


def clean_id(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class SubjectContext:
    """
    Who is asking and where they currently act.

    Supplied by the caller for every resolution; the core never looks
    identity up on its own.
    """
    user_id: str
    job_id: str | None = None
    company_id: str | None = None
    section_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    is_super_admin: bool = False


@dataclass(frozen=True)
class AccessScope:
    company_id: str | None = None
    section_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "company_id", clean_id(self.company_id))
        object.__setattr__(self, "section_id", clean_id(self.section_id))

    @property
    def is_global(self) -> bool:
        return self.company_id is None and self.section_id is None

    def matches(self, context: SubjectContext) -> bool:
        """Every populated field must equal the subject's current value."""
        if self.company_id is not None and self.company_id != clean_id(context.company_id):
            return False
        if self.section_id is not None and self.section_id != clean_id(context.section_id):
            return False
        return True

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "AccessScope":
        return cls(record.get("scope_company_id"), record.get("scope_section_id"))

    def to_record(self) -> dict[str, str | None]:
        return {"scope_company_id": self.company_id, "scope_section_id": self.section_id}

    @classmethod
    def from_lists(cls, scope: Mapping[str, Any] | None) -> "AccessScope":
        """
        Read the list-valued form {"companies": [...], "sections": [...]};
        only the first entry of each list is significant.
        """
        if not scope:
            return cls()
        companies = scope.get("companies") or []
        sections = scope.get("sections") or []
        return cls(companies[0] if companies else None, sections[0] if sections else None)

    def to_lists(self) -> dict[str, list[str]]:
        return {
            "companies": [self.company_id] if self.company_id else [],
            "sections": [self.section_id] if self.section_id else [],
        }


@dataclass(frozen=True)
class ControlScope:
    company_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    section_id: str | None = None
    restricted_to_grantor_company: bool = False

    def __post_init__(self):
        for f in fields(self):
            if f.name != "restricted_to_grantor_company":
                object.__setattr__(self, f.name, clean_id(getattr(self, f.name)))
        object.__setattr__(self, "restricted_to_grantor_company", bool(self.restricted_to_grantor_company))
        if self.restricted_to_grantor_company and self.company_id is not None:
            raise DelegationValidationError(
                "A scope restricted to the grantor's company cannot also name a company"
            )

    @property
    def is_global(self) -> bool:
        return (
            not self.restricted_to_grantor_company
            and self.company_id is None
            and self.sector_id is None
            and self.department_id is None
            and self.section_id is None
        )

    def matches(
        self,
        *,
        company_id: str | None,
        sector_id: str | None = None,
        department_id: str | None = None,
        section_id: str | None = None,
        grantor_company_id: str | None = None,
    ) -> bool:
        """
        Conjunctive match against a target's placement. With
        restricted_to_grantor_company the target must sit in the grantor's
        company; an unknown grantor company does not restrict.
        """
        company_id = clean_id(company_id)
        if self.company_id is not None and self.company_id != company_id:
            return False
        if self.restricted_to_grantor_company and grantor_company_id is not None:
            if clean_id(grantor_company_id) != company_id:
                return False
        for name, value in (
            ("sector_id", sector_id),
            ("department_id", department_id),
            ("section_id", section_id),
        ):
            required = getattr(self, name)
            if required is not None and required != clean_id(value):
                return False
        return True

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ControlScope":
        return cls(
            company_id=record.get("scope_company_id"),
            sector_id=record.get("scope_sector_id"),
            department_id=record.get("scope_department_id"),
            section_id=record.get("scope_section_id"),
            restricted_to_grantor_company=bool(record.get("restricted_to_company")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "scope_company_id": self.company_id,
            "scope_sector_id": self.sector_id,
            "scope_department_id": self.department_id,
            "scope_section_id": self.section_id,
            "restricted_to_company": self.restricted_to_grantor_company,
        }
