"""
What an administrator may delegate and to whom.

A DelegationProfile gathers the rules and resource grants owned by the
actor's job and by the actor personally, and answers the two questions the
editors ask before offering an option:

    profile.can_grant_resource("ss:12")
    profile.can_manage(DelegationKind.CONTROL, ManagedTarget(job_id=..., company_id=...))
"""
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import DelegationValidationError
from app.core.records.store import RecordStore
from app.features.delegation.managers import DELEGATION_RULES, RESOURCE_GRANTS, ScopeRule
from app.features.delegation.models import DelegationKind, OwnerType
from app.features.permissions.scopes import SubjectContext, clean_id
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class ManagedTarget:
    """Job or user an administrator wants to edit, with its placement."""
    job_id: str | None = None
    user_id: str | None = None
    company_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    section_id: str | None = None

    @classmethod
    def of_user(cls, user: dict[str, Any]) -> "ManagedTarget":
        return cls(
            job_id=user.get("job_id"),
            user_id=user.get("id"),
            company_id=user.get("company_id"),
            sector_id=user.get("sector_id"),
            department_id=user.get("department_id"),
            section_id=user.get("section_id"),
        )


@dataclass
class RuleSet:
    """Job-targeting rules plus the user ids targeted directly."""
    rules: list[ScopeRule] = field(default_factory=list)
    exceptions: set[str] = field(default_factory=set)

    def add(self, rule: ScopeRule) -> None:
        if rule.target_user_id:
            self.exceptions.add(rule.target_user_id)
        else:
            self.rules.append(rule)


@dataclass
class DelegationProfile:
    actor_id: str
    actor_company_id: str | None = None
    is_super_admin: bool = False
    access: RuleSet = field(default_factory=RuleSet)
    control: RuleSet = field(default_factory=RuleSet)
    allowed_resources: set[str] = field(default_factory=set)

    @classmethod
    async def load(cls, store: RecordStore, actor: SubjectContext) -> "DelegationProfile":
        profile = cls(
            actor_id=actor.user_id,
            actor_company_id=clean_id(actor.company_id),
            is_super_admin=actor.is_super_admin,
        )
        if actor.is_super_admin:
            return profile

        owners = [(OwnerType.USER, actor.user_id)]
        if actor.job_id:
            owners.append((OwnerType.JOB, actor.job_id))

        for owner_type, owner_id in owners:
            owner = {"owner_type": owner_type.value, "owner_id": str(owner_id)}
            for record in await store.query(DELEGATION_RULES, owner):
                try:
                    rule = ScopeRule.from_record(record)
                except DelegationValidationError:
                    log.warning(f"Ignoring malformed delegation rule {record.get('id')}")
                    continue
                if record.get("kind") == DelegationKind.ACCESS.value:
                    profile.access.add(rule)
                elif record.get("kind") == DelegationKind.CONTROL.value:
                    profile.control.add(rule)
            for record in await store.query(RESOURCE_GRANTS, owner):
                if record.get("resource_id"):
                    profile.allowed_resources.add(record["resource_id"])

        log.debug(
            f"Delegation profile for {actor.user_id}: {len(profile.access.rules)} access rule(s), "
            f"{len(profile.control.rules)} control rule(s), {len(profile.allowed_resources)} resource(s)"
        )
        return profile

    def can_grant_resource(self, resource_id: str) -> bool:
        if self.is_super_admin:
            return True
        return resource_id in self.allowed_resources

    def can_manage(self, kind: DelegationKind, target: ManagedTarget) -> bool:
        """
        Whether the actor may administer `target`.

        Access authority is implied by control authority, so access checks
        consult both rule sets. Rules targeting ALL jobs and rules naming the
        target's job both apply.
        """
        if self.is_super_admin:
            return True
        kind = DelegationKind(kind)
        rule_sets = [self.access, self.control] if kind is DelegationKind.ACCESS else [self.control]
        for rule_set in rule_sets:
            if target.user_id and target.user_id in rule_set.exceptions:
                return True
            for rule in rule_set.rules:
                if not rule.covers_job(target.job_id):
                    continue
                if rule.scope.matches(
                    company_id=target.company_id,
                    sector_id=target.sector_id,
                    department_id=target.department_id,
                    section_id=target.section_id,
                    grantor_company_id=self.actor_company_id,
                ):
                    return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_super_admin": self.is_super_admin,
            "actor_company_id": self.actor_company_id,
            "access_rules": [rule.to_record() for rule in self.access.rules],
            "access_exceptions": sorted(self.access.exceptions),
            "control_rules": [rule.to_record() for rule in self.control.rules],
            "control_exceptions": sorted(self.control.exceptions),
            "allowed_resources": sorted(self.allowed_resources),
        }
