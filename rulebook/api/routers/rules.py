"""Rule endpoints: show, create custom rule, update metadata."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from rulebook.api.exceptions import ValidationError_
from rulebook.api.schemas.rule import (
    ActiveRuleParamSchema,
    ActiveRuleSchema,
    CustomRuleCreate,
    RuleDetail,
    RuleMetadataUpdate,
    RuleParamSchema,
    ShowRuleResponse,
)
from rulebook.config import Settings, get_settings
from rulebook.database import DbSession
from rulebook.models.rule import RuleKey
from rulebook.search import SearchIndex, get_search_index
from rulebook.services.active_rule import ActiveRuleView
from rulebook.services.remediation import RemediationSettings
from rulebook.services.rule_creator import NewCustomRule, RuleCreator
from rulebook.services.rule_indexer import RuleIndexer
from rulebook.services.rule_resolution import MergedRuleView, RuleResolutionService
from rulebook.services.rule_updater import RuleUpdate, RuleUpdater

router = APIRouter(prefix="/rules", tags=["rules"])


def parse_rule_key(value: str) -> RuleKey:
    try:
        return RuleKey.parse(value)
    except ValueError:
        raise ValidationError_(
            f"Invalid rule key '{value}', expected <repository>:<rule>", field="key"
        ) from None


def to_rule_detail(view: MergedRuleView) -> RuleDetail:
    return RuleDetail(
        key=str(view.key),
        repo=view.key.repository,
        name=view.name,
        html_desc=view.html_description or None,
        md_desc=view.markdown_description,
        severity=view.severity,
        status=view.status,
        internal_key=view.config_key,
        is_template=view.is_template,
        template_key=str(view.template_key) if view.template_key else None,
        tags=list(view.tags),
        sys_tags=list(view.default_tags),
        lang=view.language,
        type=view.rule_type,
        params=[
            RuleParamSchema(
                key=p.name,
                html_desc=p.html_description or None,
                type=p.param_type,
                default_value=p.default_value,
            )
            for p in view.params
        ],
        note_data=view.note_data,
        note_login=view.note_user_login,
        def_rem_fn_type=view.default_remediation.function,
        def_rem_fn_gap_multiplier=view.default_remediation.gap_multiplier,
        def_rem_fn_base_effort=view.default_remediation.base_effort,
        rem_fn_type=view.remediation.function_value,
        rem_fn_gap_multiplier=view.remediation.gap_multiplier_value,
        rem_fn_base_effort=view.remediation.base_effort_value,
        rem_fn_overloaded=view.is_remediation_overridden,
        debt_rem_fn_type=view.remediation_function,
        debt_rem_fn_coeff=view.remediation_coefficient,
        debt_rem_fn_offset=view.remediation_offset,
        debt_overloaded=view.is_remediation_overridden,
        created_at=view.created_at.isoformat() if view.created_at else None,
        updated_at=view.updated_at.isoformat() if view.updated_at else None,
    )


def to_active_rule_schema(active: ActiveRuleView) -> ActiveRuleSchema:
    return ActiveRuleSchema(
        qprofile=str(active.profile_id),
        qprofile_name=active.profile_name,
        severity=active.severity,
        params=[ActiveRuleParamSchema(key=k, value=v) for k, v in sorted(active.params.items())],
        created_at=active.created_at.isoformat() if active.created_at else None,
    )


@router.get("/show", response_model=ShowRuleResponse)
async def show_rule(
    db: DbSession,
    key: str = Query(..., description="Rule key, e.g. java:S001"),
    actives: bool = Query(False, description="Include the activations of the rule"),
    organization: Optional[str] = Query(None, description="Organization, defaults to the default organization"),
    settings: Settings = Depends(get_settings),
) -> ShowRuleResponse:
    """Show a rule merged with the organization metadata."""
    organization_uuid = organization or settings.default_organization
    result = await RuleResolutionService(db).show_rule(
        parse_rule_key(key), organization_uuid, include_actives=actives
    )
    return ShowRuleResponse(
        rule=to_rule_detail(result.rule),
        actives=[to_active_rule_schema(a) for a in result.actives] if result.actives is not None else None,
    )


@router.post("/create", response_model=ShowRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_custom_rule(
    db: DbSession,
    data: CustomRuleCreate,
    settings: Settings = Depends(get_settings),
    index: SearchIndex = Depends(get_search_index),
) -> ShowRuleResponse:
    """Create a custom rule from a template rule."""
    organization_uuid = data.organization or settings.default_organization
    request = (
        NewCustomRule.for_template(data.custom_key, parse_rule_key(data.template_key))
        .with_name(data.name)
        .with_severity(data.severity)
        .with_status(data.status)
        .with_markdown_description(data.markdown_description)
        .with_params(data.params)
    )
    key = await RuleCreator(db).create(request, organization_uuid)
    await db.commit()

    view = await RuleResolutionService(db).get_view(key, organization_uuid)
    await RuleIndexer(db, index).index_rule(view.id)
    return ShowRuleResponse(rule=to_rule_detail(view))


@router.post("/update", response_model=ShowRuleResponse)
async def update_rule(
    db: DbSession,
    data: RuleMetadataUpdate,
    settings: Settings = Depends(get_settings),
    index: SearchIndex = Depends(get_search_index),
) -> ShowRuleResponse:
    """Update the organization metadata of a rule."""
    organization_uuid = data.organization or settings.default_organization

    remediation = None
    if data.reset_remediation:
        remediation = RemediationSettings()
    elif data.remediation_fn_type is not None:
        remediation = RemediationSettings(
            function=data.remediation_fn_type,
            gap_multiplier=data.remediation_fn_gap_multiplier,
            base_effort=data.remediation_fn_base_effort,
        )

    key = parse_rule_key(data.key)
    rule_id = await RuleUpdater(db).update(
        RuleUpdate(
            key=key,
            status=data.status,
            tags=tuple(data.tags) if data.tags is not None else None,
            remediation=remediation,
            note_data=data.note_data,
            note_user_login=data.note_login,
        ),
        organization_uuid,
    )
    await db.commit()

    await RuleIndexer(db, index).index_rule(rule_id)
    view = await RuleResolutionService(db).get_view(key, organization_uuid)
    return ShowRuleResponse(rule=to_rule_detail(view))
