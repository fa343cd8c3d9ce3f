"""Pushes rule and active rule state from the database into the search index.

Indexing is never part of the database transaction: callers commit first and
index afterwards. Every call rewrites whole documents, so repeating it is
harmless.
"""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.config import get_settings
from rulebook.logging_config import get_logger
from rulebook.models.quality_profile import ActiveRule
from rulebook.models.rule import RuleDefinition, RuleMetadata
from rulebook.repositories.quality_profile import ActiveRuleRepository, QualityProfileRepository
from rulebook.repositories.rule import RuleRepository
from rulebook.search import ACTIVE_RULE_INDEX, RULE_EXTENSION_INDEX, RULE_INDEX, SearchIndex
from rulebook.services.active_rule import resolve_params
from rulebook.services.rule_resolution import effective_tags

logger = get_logger(__name__)


def _timestamp(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def rule_document(definition: RuleDefinition, template: Optional[RuleDefinition] = None) -> dict[str, Any]:
    return {
        "id": str(definition.id),
        "key": str(definition.key),
        "repository": definition.repository_key,
        "rule_key": definition.rule_key,
        "name": definition.name,
        "language": definition.language,
        "severity": definition.severity,
        "type": definition.rule_type,
        "config_key": definition.config_key,
        "is_template": bool(definition.is_template),
        "template_key": str(template.key) if template is not None else None,
        "default_tags": sorted(definition.default_tags or []),
        "created_at": _timestamp(definition.created_at),
        "updated_at": _timestamp(definition.updated_at),
    }


def rule_extension_document(definition: RuleDefinition, metadata: RuleMetadata) -> dict[str, Any]:
    return {
        "id": f"{definition.id}|{metadata.organization_uuid}",
        "rule_id": str(definition.id),
        "rule_key": str(definition.key),
        "organization_uuid": metadata.organization_uuid,
        "status": metadata.status,
        "tags": list(effective_tags(definition.default_tags, metadata.system_tags)),
    }


class RuleIndexer:
    """Indexes rule definitions and their per-organization extensions."""

    def __init__(self, session: AsyncSession, index: SearchIndex):
        self.session = session
        self.index = index
        self.rule_repo = RuleRepository(session)

    async def index_rule(self, rule_id: UUID) -> None:
        """Rewrite the documents of one rule, or remove them if it is gone."""
        definition = await self.rule_repo.get_by_id(rule_id)
        await self.index.delete_by(RULE_EXTENSION_INDEX, rule_id=str(rule_id))
        if definition is None:
            await self.index.delete(RULE_INDEX, str(rule_id))
            logger.info("Rule removed from index", rule_id=str(rule_id))
            return

        template = None
        if definition.template_id is not None:
            template = await self.rule_repo.get_by_id(definition.template_id)

        await self.index.upsert(RULE_INDEX, str(definition.id), rule_document(definition, template))
        for metadata in await self.rule_repo.get_all_metadata(definition.id):
            document = rule_extension_document(definition, metadata)
            await self.index.upsert(RULE_EXTENSION_INDEX, document["id"], document)
        logger.info("Rule indexed", rule_key=str(definition.key), rule_id=str(rule_id))

    async def index_all(self) -> int:
        """Rebuild the rule indexes from the database. Returns the rule count."""
        batch_size = max(get_settings().index_batch_size, 1)
        await self.index.clear(RULE_INDEX)
        await self.index.clear(RULE_EXTENSION_INDEX)

        total = 0
        offset = 0
        while True:
            rule_ids = await self.rule_repo.get_all_ids(offset=offset, limit=batch_size)
            if not rule_ids:
                break
            for rule_id in rule_ids:
                await self.index_rule(rule_id)
            total += len(rule_ids)
            offset += batch_size
        logger.info("Rule index rebuilt", rules=total)
        return total


class ActiveRuleIndexer:
    """Indexes activations of rules in quality profiles."""

    def __init__(self, session: AsyncSession, index: SearchIndex):
        self.session = session
        self.index = index
        self.rule_repo = RuleRepository(session)
        self.profile_repo = QualityProfileRepository(session)
        self.active_rule_repo = ActiveRuleRepository(session)

    async def index_active_rule(self, active_rule_id: UUID) -> None:
        """Rewrite one active rule document, or remove it if the row is gone."""
        active_rule = await self.active_rule_repo.get_by_id(active_rule_id)
        if active_rule is None:
            await self.index.delete(ACTIVE_RULE_INDEX, str(active_rule_id))
            logger.info("Active rule removed from index", active_rule_id=str(active_rule_id))
            return

        document = await self._document(active_rule)
        await self.index.upsert(ACTIVE_RULE_INDEX, str(active_rule.id), document)
        logger.info("Active rule indexed", active_rule_id=str(active_rule_id), rule_key=document["rule_key"])

    async def index_all(self) -> int:
        """Rebuild the active rule index from the database."""
        batch_size = max(get_settings().index_batch_size, 1)
        await self.index.clear(ACTIVE_RULE_INDEX)

        total = 0
        offset = 0
        while True:
            ids = await self.active_rule_repo.get_all_ids(offset=offset, limit=batch_size)
            if not ids:
                break
            for active_rule_id in ids:
                await self.index_active_rule(active_rule_id)
            total += len(ids)
            offset += batch_size
        logger.info("Active rule index rebuilt", active_rules=total)
        return total

    async def _document(self, active_rule: ActiveRule) -> dict[str, Any]:
        definition = await self.rule_repo.get_by_id(active_rule.rule_id)
        profile = await self.profile_repo.get_by_id(active_rule.profile_id)
        params = resolve_params(
            await self.rule_repo.get_params(active_rule.rule_id),
            await self.active_rule_repo.get_params(active_rule.id),
        )
        return {
            "id": str(active_rule.id),
            "rule_id": str(active_rule.rule_id),
            "rule_key": str(definition.key) if definition else None,
            "profile_id": str(active_rule.profile_id),
            "organization_uuid": profile.organization_uuid if profile else None,
            "language": profile.language if profile else None,
            "severity": active_rule.severity,
            "params": params,
            "created_at": _timestamp(active_rule.created_at),
            "updated_at": _timestamp(active_rule.updated_at),
        }
