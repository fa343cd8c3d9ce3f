"""Repository for rule definitions, organization metadata and parameters."""

from dataclasses import dataclass, field
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.api.exceptions import ConflictError, NotFoundError
from rulebook.logging_config import get_logger
from rulebook.models.quality_profile import ActiveRule, ActiveRuleParam
from rulebook.models.rule import RuleDefinition, RuleKey, RuleMetadata, RuleParam
from rulebook.repositories.base import BaseRepository

logger = get_logger(__name__)

# Definition fields a plugin may change when it registers a rule again
REGISTERED_FIELDS = (
    "name",
    "description",
    "description_format",
    "severity",
    "rule_type",
    "config_key",
    "language",
    "default_tags",
    "is_template",
    "default_remediation_function",
    "default_remediation_gap_multiplier",
    "default_remediation_base_effort",
)


@dataclass
class RuleRecord:
    """Everything stored about one rule for one organization."""

    definition: RuleDefinition
    metadata: Optional[RuleMetadata] = None
    params: list[RuleParam] = field(default_factory=list)


class RuleRepository(BaseRepository[RuleDefinition]):
    """Repository for rule operations."""

    model_class = RuleDefinition

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def get_by_key(self, key: RuleKey) -> Optional[RuleDefinition]:
        """Get rule definition by (repository, rule) key."""
        stmt = select(RuleDefinition).where(
            RuleDefinition.repository_key == key.repository,
            RuleDefinition.rule_key == key.rule,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_definition(self, definition: RuleDefinition) -> UUID:
        """Insert a new rule definition and return its internal id.

        Raises:
            ConflictError: a definition with the same key already exists
        """
        key = definition.key
        if await self.get_by_key(key) is not None:
            raise ConflictError(f"Rule already exists: {key}", details={"rule_key": str(key)})

        self.session.add(definition)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Rule already exists: {key}", details={"rule_key": str(key)}) from e

        logger.info("Rule definition inserted", rule_key=str(key), rule_id=str(definition.id))
        return definition.id

    async def update_definition(self, definition: RuleDefinition) -> RuleDefinition:
        """Replace the fields of a registered definition (plugin re-registration).

        The stored row is located by key, which never changes.

        Raises:
            NotFoundError: no definition has this key
        """
        stored = await self.get_by_key(definition.key)
        if stored is None:
            raise NotFoundError("Rule", str(definition.key))

        if stored is not definition:
            for attr in REGISTERED_FIELDS:
                setattr(stored, attr, getattr(definition, attr))
            stored.default_tags = list(definition.default_tags or [])
            stored.is_template = bool(definition.is_template)
        await self.session.flush()
        logger.info("Rule definition updated", rule_key=str(stored.key), rule_id=str(stored.id))
        return stored

    async def delete_definition(self, rule_id: UUID) -> None:
        """Delete a definition together with its metadata, params and activations."""
        definition = await self.get_by_id(rule_id)
        if definition is None:
            raise NotFoundError("Rule", str(rule_id))

        active_rule_ids = select(ActiveRule.id).where(ActiveRule.rule_id == rule_id)
        await self.session.execute(
            delete(ActiveRuleParam).where(ActiveRuleParam.active_rule_id.in_(active_rule_ids))
        )
        await self.session.execute(delete(ActiveRule).where(ActiveRule.rule_id == rule_id))
        await self.session.execute(delete(RuleParam).where(RuleParam.rule_id == rule_id))
        await self.session.execute(delete(RuleMetadata).where(RuleMetadata.rule_id == rule_id))
        await self.session.delete(definition)
        await self.session.flush()
        logger.info("Rule definition deleted", rule_key=str(definition.key), rule_id=str(rule_id))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def get_metadata(self, rule_id: UUID, organization_uuid: str) -> Optional[RuleMetadata]:
        stmt = select(RuleMetadata).where(
            RuleMetadata.rule_id == rule_id,
            RuleMetadata.organization_uuid == organization_uuid,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all_metadata(self, rule_id: UUID) -> Sequence[RuleMetadata]:
        """Get the metadata rows of every organization for a rule."""
        stmt = (
            select(RuleMetadata)
            .where(RuleMetadata.rule_id == rule_id)
            .order_by(RuleMetadata.organization_uuid)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update_metadata(self, metadata: RuleMetadata) -> RuleMetadata:
        """Insert or update the metadata of a rule for one organization.

        Raises:
            NotFoundError: the referenced definition does not exist
        """
        rule_id, organization_uuid = metadata.rule_id, metadata.organization_uuid
        if await self.get_by_id(rule_id) is None:
            raise NotFoundError("Rule", str(rule_id))

        existing = await self.get_metadata(rule_id, organization_uuid)
        if existing is None:
            self.session.add(metadata)
            stored = metadata
        elif existing is metadata:
            stored = existing
        else:
            existing.status = metadata.status
            existing.remediation_function = metadata.remediation_function
            existing.remediation_gap_multiplier = metadata.remediation_gap_multiplier
            existing.remediation_base_effort = metadata.remediation_base_effort
            existing.system_tags = list(metadata.system_tags or [])
            existing.note_data = metadata.note_data
            existing.note_user_login = metadata.note_user_login
            stored = existing

        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                "Concurrent metadata update",
                details={"rule_id": str(rule_id), "organization": organization_uuid},
            ) from e
        return stored

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    async def get_params(self, rule_id: UUID) -> list[RuleParam]:
        stmt = select(RuleParam).where(RuleParam.rule_id == rule_id).order_by(RuleParam.name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def insert_param(self, rule_id: UUID, param: RuleParam) -> RuleParam:
        """Attach a parameter to a rule definition.

        Raises:
            NotFoundError: the rule does not exist
            ConflictError: the rule already declares a parameter with this name
        """
        definition = await self.get_by_id(rule_id)
        if definition is None:
            raise NotFoundError("Rule", str(rule_id))

        rule_key = str(definition.key)
        param_name = param.name
        existing = {p.name for p in await self.get_params(rule_id)}
        if param_name in existing:
            raise ConflictError(
                f"Parameter '{param_name}' already exists on rule {rule_key}",
                details={"rule_key": rule_key, "param": param_name},
            )

        param.rule_id = rule_id
        self.session.add(param)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Parameter '{param_name}' already exists on rule {rule_key}",
                details={"rule_key": rule_key, "param": param_name},
            ) from e
        return param

    # ------------------------------------------------------------------
    # Aggregated lookups
    # ------------------------------------------------------------------

    async def find_by_key(self, key: RuleKey, organization_uuid: str) -> RuleRecord:
        """Load definition, organization metadata and params of a rule.

        Raises:
            NotFoundError: no rule has this key
        """
        definition = await self.get_by_key(key)
        if definition is None:
            raise NotFoundError("Rule", str(key))
        return await self._load_record(definition, organization_uuid)

    async def find_by_id(self, rule_id: UUID, organization_uuid: str) -> RuleRecord:
        definition = await self.get_by_id(rule_id)
        if definition is None:
            raise NotFoundError("Rule", str(rule_id))
        return await self._load_record(definition, organization_uuid)

    async def _load_record(self, definition: RuleDefinition, organization_uuid: str) -> RuleRecord:
        return RuleRecord(
            definition=definition,
            metadata=await self.get_metadata(definition.id, organization_uuid),
            params=await self.get_params(definition.id),
        )
