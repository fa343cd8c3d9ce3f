"""Rule definition, organization metadata and parameter models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rulebook.models.base import JSONType, RulebookBase


class RuleType(str, Enum):
    """Kind of issue a rule raises."""

    CODE_SMELL = "CODE_SMELL"
    BUG = "BUG"
    VULNERABILITY = "VULNERABILITY"


class RuleStatus(str, Enum):
    """Lifecycle status of a rule within an organization."""

    READY = "READY"
    BETA = "BETA"
    DEPRECATED = "DEPRECATED"
    REMOVED = "REMOVED"


class Severity(str, Enum):
    """Severity levels, from least to most severe."""

    INFO = "INFO"
    MINOR = "MINOR"
    MAJOR = "MAJOR"
    CRITICAL = "CRITICAL"
    BLOCKER = "BLOCKER"


class DescriptionFormat(str, Enum):
    """How a stored description must be turned into HTML."""

    HTML = "HTML"
    MARKDOWN = "MARKDOWN"


class RemediationFunctionType(str, Enum):
    """Formula estimating the cost to fix one issue."""

    LINEAR = "LINEAR"
    LINEAR_OFFSET = "LINEAR_OFFSET"
    CONSTANT_ISSUE = "CONSTANT_ISSUE"


@dataclass(frozen=True)
class RuleKey:
    """External handle of a rule: repository plus rule identifier."""

    repository: str
    rule: str

    @classmethod
    def parse(cls, value: str) -> "RuleKey":
        """Parse ``repository:rule``. Raises ValueError on malformed input."""
        repository, sep, rule = (value or "").partition(":")
        if not sep or not repository.strip() or not rule.strip():
            raise ValueError(f"Invalid rule key: {value!r}")
        return cls(repository=repository, rule=rule)

    def __str__(self) -> str:
        return f"{self.repository}:{self.rule}"


class RuleDefinition(RulebookBase):
    """Plugin-authored rule definition, immutable for end users."""

    __tablename__ = "rules"
    __table_args__ = (
        UniqueConstraint("repository_key", "rule_key", name="uq_rules_repository_rule_key"),
    )

    # Identity
    repository_key: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_key: Mapped[str] = mapped_column(String(200), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Description
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_format: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Classification
    severity: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    rule_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    config_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    default_tags: Mapped[list[str]] = mapped_column(JSONType(), default=list, nullable=False)

    # Templates
    is_template: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    template_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("rules.id", ondelete="SET NULL"), nullable=True
    )

    # Default remediation
    default_remediation_function: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    default_remediation_gap_multiplier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    default_remediation_base_effort: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    @property
    def key(self) -> RuleKey:
        return RuleKey(self.repository_key, self.rule_key)

    def __repr__(self) -> str:
        return f"<RuleDefinition(id={self.id}, key={self.repository_key}:{self.rule_key})>"


class RuleMetadata(RulebookBase):
    """Organization-scoped overlay over a rule definition.

    A null remediation field means "no override": the definition default
    applies for that attribute.
    """

    __tablename__ = "rules_metadata"
    __table_args__ = (
        UniqueConstraint("rule_id", "organization_uuid", name="uq_rules_metadata_rule_org"),
    )

    rule_id: Mapped[UUID] = mapped_column(
        ForeignKey("rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_uuid: Mapped[str] = mapped_column(String(40), nullable=False)

    status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Remediation overrides
    remediation_function: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    remediation_gap_multiplier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    remediation_base_effort: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    system_tags: Mapped[list[str]] = mapped_column(JSONType(), default=list, nullable=False)

    # Note
    note_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    note_user_login: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<RuleMetadata(rule_id={self.rule_id}, organization={self.organization_uuid})>"


class RuleParam(RulebookBase):
    """Parameter declared by a rule definition."""

    __tablename__ = "rules_parameters"
    __table_args__ = (
        UniqueConstraint("rule_id", "name", name="uq_rules_parameters_rule_name"),
        Index("idx_rules_parameters_rule", "rule_id"),
    )

    rule_id: Mapped[UUID] = mapped_column(ForeignKey("rules.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    param_type: Mapped[str] = mapped_column(String(512), nullable=False, default="STRING")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    default_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<RuleParam(rule_id={self.rule_id}, name={self.name})>"
