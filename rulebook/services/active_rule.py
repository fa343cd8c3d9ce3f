"""Activation of rules in quality profiles.

A rule is either inactive or active in a profile; activation creates exactly
one ActiveRule row plus one ActiveRuleParam row per overridden parameter.
Index synchronization is left to the caller, after commit, so that bulk
activations can batch their index updates.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.api.exceptions import (
    AlreadyActiveError,
    NotFoundError,
    UnknownParamError,
    ValidationError_,
)
from rulebook.logging_config import get_logger
from rulebook.models.quality_profile import ActiveRule, ActiveRuleParam, QualityProfile
from rulebook.models.rule import RuleDefinition, RuleParam, RuleStatus, Severity
from rulebook.repositories.quality_profile import ActiveRuleRepository, QualityProfileRepository
from rulebook.repositories.rule import RuleRepository

logger = get_logger(__name__)

_INTEGER = re.compile(r"^[+-]?\d+$")
_FLOAT = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


@dataclass(frozen=True)
class ActiveRuleView:
    """An activation of a rule with its parameters resolved."""

    id: UUID
    profile_id: UUID
    profile_name: str
    organization_uuid: str
    rule_id: UUID
    severity: Optional[str]
    params: dict[str, Optional[str]] = field(default_factory=dict)
    overridden_params: dict[str, Optional[str]] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def resolve_params(
    rule_params: list[RuleParam],
    overrides: list[ActiveRuleParam],
) -> dict[str, Optional[str]]:
    """Profile override when present, else the rule param default."""
    values = {p.name: p.default_value for p in rule_params}
    for override in overrides:
        if override.param_key in values:
            values[override.param_key] = override.value
    return values


def validate_param_value(param: RuleParam, value: str) -> None:
    """Check a parameter value against the declared parameter type."""
    param_type = (param.param_type or "STRING").split(",")[0].strip().upper()
    valid = True
    if param_type == "INTEGER":
        valid = bool(_INTEGER.match(value))
    elif param_type == "FLOAT":
        valid = bool(_FLOAT.match(value))
    elif param_type == "BOOLEAN":
        valid = value in ("true", "false")
    if not valid:
        raise ValidationError_(
            f"Value '{value}' must be of type {param_type} for parameter '{param.name}'",
            field=param.name,
        )


class ActiveRuleManager:
    """Links rules to quality profiles with profile-scoped parameters."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rule_repo = RuleRepository(session)
        self.profile_repo = QualityProfileRepository(session)
        self.active_rule_repo = ActiveRuleRepository(session)

    async def activate(
        self,
        profile_id: UUID,
        rule_id: UUID,
        severity: Optional[str] = None,
        param_overrides: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ActiveRule:
        """Activate a rule in a quality profile.

        Raises:
            NotFoundError: profile or rule does not exist
            ValidationError_: template or removed rule, language mismatch, bad severity or value
            UnknownParamError: an override names a parameter the rule does not declare
            AlreadyActiveError: the rule is already active in the profile
        """
        param_overrides = dict(param_overrides or {})

        profile = await self._get_profile(profile_id)
        definition = await self.rule_repo.get_by_id(rule_id)
        if definition is None:
            raise NotFoundError("Rule", str(rule_id))

        await self._check_activable(definition, profile)
        severity = self._check_severity(severity or definition.severity)

        rule_params = {p.name: p for p in await self.rule_repo.get_params(rule_id)}
        unknown = [name for name in param_overrides if name not in rule_params]
        if unknown:
            raise UnknownParamError(str(definition.key), unknown)
        for name, value in param_overrides.items():
            if value is not None:
                validate_param_value(rule_params[name], value)

        rule_key = str(definition.key)
        if await self.active_rule_repo.get_by_rule_and_profile(rule_id, profile_id) is not None:
            raise AlreadyActiveError(rule_key, str(profile_id))

        active_rule = ActiveRule(profile_id=profile_id, rule_id=rule_id, severity=severity)
        self.session.add(active_rule)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Concurrent activation won the uniqueness constraint on (profile, rule)
            raise AlreadyActiveError(rule_key, str(profile_id)) from e

        for name, value in sorted(param_overrides.items()):
            if value is None:
                continue
            await self.active_rule_repo.insert_param(
                active_rule,
                ActiveRuleParam(
                    rules_parameter_id=rule_params[name].id,
                    param_key=name,
                    value=value,
                ),
            )

        logger.info(
            "Rule activated",
            rule_key=rule_key,
            profile_id=str(profile_id),
            severity=severity,
            params=sorted(param_overrides),
        )
        return active_rule

    async def deactivate(self, profile_id: UUID, rule_id: UUID) -> UUID:
        """Remove the activation of a rule from a profile.

        Returns the id of the deleted active rule so the caller can drop it
        from the index after commit.

        Raises:
            NotFoundError: the rule is not active in the profile
        """
        active_rule = await self.active_rule_repo.get_by_rule_and_profile(rule_id, profile_id)
        if active_rule is None:
            raise NotFoundError("ActiveRule", f"rule={rule_id} profile={profile_id}")

        active_rule_id = active_rule.id
        await self.active_rule_repo.delete_with_params(active_rule)
        logger.info("Rule deactivated", rule_id=str(rule_id), profile_id=str(profile_id))
        return active_rule_id

    async def list_actives(self, rule_id: UUID, organization_uuid: str) -> list[ActiveRuleView]:
        """Activations of a rule in the profiles of one organization."""
        active_rules = await self.active_rule_repo.get_by_rule(rule_id)
        if not active_rules:
            return []

        profiles = {
            p.id: p
            for p in await self.profile_repo.get_by_ids([a.profile_id for a in active_rules])
            if p.organization_uuid == organization_uuid
        }
        active_rules = [a for a in active_rules if a.profile_id in profiles]

        rule_params = await self.rule_repo.get_params(rule_id)
        overrides = await self.active_rule_repo.get_params_by_active_rule_ids([a.id for a in active_rules])

        return [
            self.to_view(active_rule, profiles[active_rule.profile_id], rule_params, overrides.get(active_rule.id, []))
            for active_rule in active_rules
        ]

    @staticmethod
    def to_view(
        active_rule: ActiveRule,
        profile: QualityProfile,
        rule_params: list[RuleParam],
        overrides: list[ActiveRuleParam],
    ) -> ActiveRuleView:
        return ActiveRuleView(
            id=active_rule.id,
            profile_id=profile.id,
            profile_name=profile.name,
            organization_uuid=profile.organization_uuid,
            rule_id=active_rule.rule_id,
            severity=active_rule.severity,
            params=resolve_params(rule_params, overrides),
            overridden_params={o.param_key: o.value for o in overrides},
            created_at=active_rule.created_at,
            updated_at=active_rule.updated_at,
        )

    async def _get_profile(self, profile_id: UUID) -> QualityProfile:
        profile = await self.profile_repo.get_by_id(profile_id)
        if profile is None:
            raise NotFoundError("QualityProfile", str(profile_id))
        return profile

    async def _check_activable(self, definition: RuleDefinition, profile: QualityProfile) -> None:
        if definition.is_template:
            raise ValidationError_(
                f"Template rule '{definition.key}' cannot be activated",
                field="rule",
            )
        if definition.language != profile.language:
            raise ValidationError_(
                f"Rule '{definition.key}' ({definition.language}) cannot be activated "
                f"in profile '{profile.name}' ({profile.language})",
                field="rule",
            )
        metadata = await self.rule_repo.get_metadata(definition.id, profile.organization_uuid)
        if metadata is not None and metadata.status == RuleStatus.REMOVED.value:
            raise ValidationError_(f"Removed rule '{definition.key}' cannot be activated", field="rule")

    @staticmethod
    def _check_severity(severity: Optional[str]) -> Optional[str]:
        if severity is None:
            return None
        try:
            return Severity(severity).value
        except ValueError:
            raise ValidationError_(f"Unknown severity: {severity}", field="severity") from None
