"""Rule resolution: merge a definition with organization metadata.

The merged view is recomputed on every read and never cached, so a committed
write is visible to the next read without any invalidation step. Markdown
descriptions are rendered here, at read time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.logging_config import get_logger
from rulebook.models.rule import DescriptionFormat, RuleDefinition, RuleKey, RuleMetadata, RuleStatus
from rulebook.repositories.rule import RuleRecord, RuleRepository
from rulebook.services import markdown
from rulebook.services.active_rule import ActiveRuleManager, ActiveRuleView
from rulebook.services.remediation import RemediationSettings, ResolvedRemediation, resolve_remediation

logger = get_logger(__name__)


@dataclass(frozen=True)
class ParamView:
    """A declared rule parameter as exposed to readers."""

    name: str
    param_type: str
    description: Optional[str]
    html_description: str
    default_value: Optional[str]


@dataclass(frozen=True)
class MergedRuleView:
    """Read-time combination of a rule definition and organization metadata."""

    id: UUID
    key: RuleKey
    organization_uuid: str
    name: Optional[str]
    html_description: str
    markdown_description: Optional[str]
    description_format: Optional[str]
    severity: Optional[str]
    status: str
    rule_type: Optional[str]
    config_key: Optional[str]
    language: Optional[str]
    is_template: bool
    template_key: Optional[RuleKey]
    default_tags: tuple[str, ...]
    system_tags: tuple[str, ...]
    tags: tuple[str, ...]
    default_remediation: RemediationSettings
    remediation_override: RemediationSettings
    remediation: ResolvedRemediation
    note_data: Optional[str] = None
    note_user_login: Optional[str] = None
    params: tuple[ParamView, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Legacy debt fields, projections of the effective remediation triple
    @property
    def remediation_function(self) -> Optional[str]:
        return self.remediation.function_value

    @property
    def remediation_coefficient(self) -> Optional[str]:
        return self.remediation.gap_multiplier_value

    @property
    def remediation_offset(self) -> Optional[str]:
        return self.remediation.base_effort_value

    @property
    def is_remediation_overridden(self) -> bool:
        return self.remediation.is_overridden

    def param(self, name: str) -> Optional[ParamView]:
        for p in self.params:
            if p.name == name:
                return p
        return None


def effective_tags(default_tags: Optional[Iterable[str]], system_tags: Optional[Iterable[str]]) -> tuple[str, ...]:
    """Union of definition and metadata tags, sorted for determinism."""
    return tuple(sorted(set(default_tags or ()) | set(system_tags or ())))


def render_description(text: Optional[str], description_format: Optional[str]) -> str:
    if not text:
        return ""
    if description_format == DescriptionFormat.MARKDOWN.value:
        return markdown.to_html(text)
    return text


def resolve(
    record: RuleRecord,
    organization_uuid: str,
    template_key: Optional[RuleKey] = None,
) -> MergedRuleView:
    """Build the merged view of one rule for one organization."""
    definition: RuleDefinition = record.definition
    metadata: Optional[RuleMetadata] = record.metadata

    defaults = RemediationSettings(
        function=definition.default_remediation_function,
        gap_multiplier=definition.default_remediation_gap_multiplier,
        base_effort=definition.default_remediation_base_effort,
    )
    overrides = RemediationSettings(
        function=metadata.remediation_function if metadata else None,
        gap_multiplier=metadata.remediation_gap_multiplier if metadata else None,
        base_effort=metadata.remediation_base_effort if metadata else None,
    )
    system_tags = tuple(sorted(set(metadata.system_tags or ()))) if metadata else ()

    is_markdown = definition.description_format == DescriptionFormat.MARKDOWN.value

    return MergedRuleView(
        id=definition.id,
        key=definition.key,
        organization_uuid=organization_uuid,
        name=definition.name,
        html_description=render_description(definition.description, definition.description_format),
        markdown_description=definition.description if is_markdown else None,
        description_format=definition.description_format,
        severity=definition.severity,
        status=(metadata.status if metadata and metadata.status else RuleStatus.READY.value),
        rule_type=definition.rule_type,
        config_key=definition.config_key,
        language=definition.language,
        is_template=bool(definition.is_template),
        template_key=template_key,
        default_tags=tuple(sorted(set(definition.default_tags or ()))),
        system_tags=system_tags,
        tags=effective_tags(definition.default_tags, system_tags),
        default_remediation=defaults,
        remediation_override=overrides,
        remediation=resolve_remediation(defaults, overrides),
        note_data=metadata.note_data if metadata else None,
        note_user_login=metadata.note_user_login if metadata else None,
        params=tuple(
            ParamView(
                name=p.name,
                param_type=p.param_type,
                description=p.description,
                html_description=markdown.to_html(p.description),
                default_value=p.default_value,
            )
            for p in record.params
        ),
        created_at=definition.created_at,
        updated_at=definition.updated_at,
    )


@dataclass(frozen=True)
class ShowRuleResult:
    """Output of the show-rule read."""

    rule: MergedRuleView
    actives: Optional[list[ActiveRuleView]] = None


class RuleResolutionService:
    """Read path producing merged rule views from the record store."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rule_repo = RuleRepository(session)

    async def get_view(self, key: RuleKey, organization_uuid: str) -> MergedRuleView:
        """Merged view of a rule by key.

        Raises:
            NotFoundError: no rule has this key
        """
        record = await self.rule_repo.find_by_key(key, organization_uuid)
        return resolve(record, organization_uuid, await self._template_key(record.definition))

    async def get_view_by_id(self, rule_id: UUID, organization_uuid: str) -> MergedRuleView:
        record = await self.rule_repo.find_by_id(rule_id, organization_uuid)
        return resolve(record, organization_uuid, await self._template_key(record.definition))

    async def show_rule(
        self,
        key: RuleKey,
        organization_uuid: str,
        include_actives: bool = False,
    ) -> ShowRuleResult:
        """Merged view of a rule, optionally with its activations."""
        view = await self.get_view(key, organization_uuid)
        actives = None
        if include_actives:
            actives = await ActiveRuleManager(self.session).list_actives(view.id, organization_uuid)
        logger.debug("Rule shown", rule_key=str(key), organization=organization_uuid, actives=include_actives)
        return ShowRuleResult(rule=view, actives=actives)

    async def _template_key(self, definition: RuleDefinition) -> Optional[RuleKey]:
        if definition.template_id is None:
            return None
        template = await self.rule_repo.get_by_id(definition.template_id)
        return template.key if template else None

