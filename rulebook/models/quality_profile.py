"""Quality profile and rule activation models."""

from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rulebook.models.base import RulebookBase


class QualityProfile(RulebookBase):
    """Named, organization-scoped set of active rules for one language."""

    __tablename__ = "quality_profiles"
    __table_args__ = (
        UniqueConstraint("organization_uuid", "language", "name", name="uq_quality_profiles_org_lang_name"),
    )

    organization_uuid: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    language: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<QualityProfile(id={self.id}, name={self.name}, language={self.language})>"


class ActiveRule(RulebookBase):
    """Activation of one rule in one quality profile."""

    __tablename__ = "active_rules"
    __table_args__ = (
        UniqueConstraint("profile_id", "rule_id", name="uq_active_rules_profile_rule"),
    )

    profile_id: Mapped[UUID] = mapped_column(
        ForeignKey("quality_profiles.id", ondelete="CASCADE"), nullable=False
    )
    rule_id: Mapped[UUID] = mapped_column(
        ForeignKey("rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    severity: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    def __repr__(self) -> str:
        return f"<ActiveRule(id={self.id}, profile_id={self.profile_id}, rule_id={self.rule_id})>"


class ActiveRuleParam(RulebookBase):
    """Profile-scoped override of a rule parameter value."""

    __tablename__ = "active_rule_parameters"
    __table_args__ = (
        UniqueConstraint("active_rule_id", "rules_parameter_id", name="uq_active_rule_parameters_param"),
    )

    active_rule_id: Mapped[UUID] = mapped_column(
        ForeignKey("active_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rules_parameter_id: Mapped[UUID] = mapped_column(
        ForeignKey("rules_parameters.id", ondelete="CASCADE"), nullable=False
    )
    param_key: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ActiveRuleParam(active_rule_id={self.active_rule_id}, key={self.param_key})>"
