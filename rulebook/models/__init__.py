"""SQLAlchemy models for the rulebook server."""

from rulebook.models.base import Base, RulebookBase
from rulebook.models.quality_profile import ActiveRule, ActiveRuleParam, QualityProfile
from rulebook.models.rule import (
    DescriptionFormat,
    RemediationFunctionType,
    RuleDefinition,
    RuleKey,
    RuleMetadata,
    RuleParam,
    RuleStatus,
    RuleType,
    Severity,
)

__all__ = [
    "Base",
    "RulebookBase",
    "ActiveRule",
    "ActiveRuleParam",
    "QualityProfile",
    "DescriptionFormat",
    "RemediationFunctionType",
    "RuleDefinition",
    "RuleKey",
    "RuleMetadata",
    "RuleParam",
    "RuleStatus",
    "RuleType",
    "Severity",
]
