"""Quality profile endpoints: create profile, activate and deactivate rules."""

from fastapi import APIRouter, Depends, status

from rulebook.api.exceptions import ConflictError, NotFoundError
from rulebook.api.routers.rules import parse_rule_key, to_active_rule_schema
from rulebook.api.schemas.rule import (
    ActivateRuleRequest,
    ActiveRuleSchema,
    DeactivateRuleRequest,
    QualityProfileCreate,
    QualityProfileDetail,
)
from rulebook.config import Settings, get_settings
from rulebook.database import DbSession
from rulebook.logging_config import get_logger
from rulebook.models.quality_profile import QualityProfile
from rulebook.repositories.quality_profile import QualityProfileRepository
from rulebook.repositories.rule import RuleRepository
from rulebook.search import SearchIndex, get_search_index
from rulebook.services.active_rule import ActiveRuleManager
from rulebook.services.rule_indexer import ActiveRuleIndexer

router = APIRouter(prefix="/qualityprofiles", tags=["qualityprofiles"])
logger = get_logger(__name__)


@router.post("", response_model=QualityProfileDetail, status_code=status.HTTP_201_CREATED)
async def create_quality_profile(
    db: DbSession,
    data: QualityProfileCreate,
    settings: Settings = Depends(get_settings),
) -> QualityProfileDetail:
    """Create a quality profile."""
    organization_uuid = data.organization or settings.default_organization
    repo = QualityProfileRepository(db)

    if await repo.get_by_name(organization_uuid, data.language, data.name):
        raise ConflictError(f"Quality profile '{data.name}' already exists for language '{data.language}'")

    profile = await repo.create(
        QualityProfile(organization_uuid=organization_uuid, name=data.name, language=data.language)
    )
    await db.commit()
    logger.info("Quality profile created", profile_id=str(profile.id), name=profile.name)

    return QualityProfileDetail(
        id=str(profile.id),
        name=profile.name,
        language=profile.language,
        organization=profile.organization_uuid,
    )


@router.post("/activate_rule", response_model=ActiveRuleSchema, status_code=status.HTTP_201_CREATED)
async def activate_rule(
    db: DbSession,
    data: ActivateRuleRequest,
    index: SearchIndex = Depends(get_search_index),
) -> ActiveRuleSchema:
    """Activate a rule in a quality profile."""
    key = parse_rule_key(data.rule_key)
    definition = await RuleRepository(db).get_by_key(key)
    if definition is None:
        raise NotFoundError("Rule", str(key))

    manager = ActiveRuleManager(db)
    active_rule = await manager.activate(
        data.profile_id, definition.id, severity=data.severity, param_overrides=data.params
    )
    await db.commit()

    await ActiveRuleIndexer(db, index).index_active_rule(active_rule.id)

    profile = await QualityProfileRepository(db).get_by_id(data.profile_id)
    actives = await manager.list_actives(definition.id, profile.organization_uuid)
    view = next(a for a in actives if a.id == active_rule.id)
    return to_active_rule_schema(view)


@router.post("/deactivate_rule", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_rule(
    db: DbSession,
    data: DeactivateRuleRequest,
    index: SearchIndex = Depends(get_search_index),
) -> None:
    """Deactivate a rule in a quality profile."""
    key = parse_rule_key(data.rule_key)
    definition = await RuleRepository(db).get_by_key(key)
    if definition is None:
        raise NotFoundError("Rule", str(key))

    active_rule_id = await ActiveRuleManager(db).deactivate(data.profile_id, definition.id)
    await db.commit()

    await ActiveRuleIndexer(db, index).index_active_rule(active_rule_id)
