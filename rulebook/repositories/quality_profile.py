"""Repositories for quality profiles and rule activations."""

from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.models.quality_profile import ActiveRule, ActiveRuleParam, QualityProfile
from rulebook.repositories.base import BaseRepository


class QualityProfileRepository(BaseRepository[QualityProfile]):
    """Repository for quality profile operations."""

    model_class = QualityProfile

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_name(
        self,
        organization_uuid: str,
        language: str,
        name: str,
    ) -> Optional[QualityProfile]:
        stmt = select(QualityProfile).where(
            QualityProfile.organization_uuid == organization_uuid,
            QualityProfile.language == language,
            QualityProfile.name == name,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class ActiveRuleRepository(BaseRepository[ActiveRule]):
    """Repository for rule activations and their parameter overrides."""

    model_class = ActiveRule

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_rule_and_profile(self, rule_id: UUID, profile_id: UUID) -> Optional[ActiveRule]:
        stmt = select(ActiveRule).where(
            ActiveRule.rule_id == rule_id,
            ActiveRule.profile_id == profile_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_rule(self, rule_id: UUID) -> Sequence[ActiveRule]:
        stmt = select(ActiveRule).where(ActiveRule.rule_id == rule_id).order_by(ActiveRule.created_at)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_params(self, active_rule_id: UUID) -> list[ActiveRuleParam]:
        stmt = (
            select(ActiveRuleParam)
            .where(ActiveRuleParam.active_rule_id == active_rule_id)
            .order_by(ActiveRuleParam.param_key)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_params_by_active_rule_ids(
        self, active_rule_ids: Sequence[UUID]
    ) -> dict[UUID, list[ActiveRuleParam]]:
        by_active_rule: dict[UUID, list[ActiveRuleParam]] = {id: [] for id in active_rule_ids}
        if not active_rule_ids:
            return by_active_rule
        stmt = (
            select(ActiveRuleParam)
            .where(ActiveRuleParam.active_rule_id.in_(list(active_rule_ids)))
            .order_by(ActiveRuleParam.param_key)
        )
        result = await self.session.execute(stmt)
        for param in result.scalars().all():
            by_active_rule.setdefault(param.active_rule_id, []).append(param)
        return by_active_rule

    async def insert_param(self, active_rule: ActiveRule, param: ActiveRuleParam) -> ActiveRuleParam:
        param.active_rule_id = active_rule.id
        self.session.add(param)
        await self.session.flush()
        return param

    async def delete_with_params(self, active_rule: ActiveRule) -> None:
        await self.session.execute(
            delete(ActiveRuleParam).where(ActiveRuleParam.active_rule_id == active_rule.id)
        )
        await self.session.delete(active_rule)
        await self.session.flush()
