"""Pydantic schemas for rules and rule activation."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RuleParamSchema(BaseModel):
    """Declared rule parameter."""

    key: str
    html_desc: Optional[str] = None
    type: str
    default_value: Optional[str] = None


class RuleDetail(BaseModel):
    """Merged view of a rule for one organization."""

    key: str
    repo: str
    name: Optional[str] = None
    html_desc: Optional[str] = None
    md_desc: Optional[str] = None
    severity: Optional[str] = None
    status: str
    internal_key: Optional[str] = None
    is_template: bool = False
    template_key: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    sys_tags: list[str] = Field(default_factory=list)
    lang: Optional[str] = None
    type: Optional[str] = None
    params: list[RuleParamSchema] = Field(default_factory=list)
    note_data: Optional[str] = None
    note_login: Optional[str] = None

    # Default remediation, as authored with the definition
    def_rem_fn_type: Optional[str] = None
    def_rem_fn_gap_multiplier: Optional[str] = None
    def_rem_fn_base_effort: Optional[str] = None

    # Effective remediation
    rem_fn_type: Optional[str] = None
    rem_fn_gap_multiplier: Optional[str] = None
    rem_fn_base_effort: Optional[str] = None
    rem_fn_overloaded: bool = False

    # Deprecated debt fields, mirror the effective remediation
    debt_rem_fn_type: Optional[str] = None
    debt_rem_fn_coeff: Optional[str] = None
    debt_rem_fn_offset: Optional[str] = None
    debt_overloaded: bool = False

    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ActiveRuleParamSchema(BaseModel):
    key: str
    value: Optional[str] = None


class ActiveRuleSchema(BaseModel):
    """Activation of a rule in a quality profile."""

    qprofile: str
    qprofile_name: str
    severity: Optional[str] = None
    params: list[ActiveRuleParamSchema] = Field(default_factory=list)
    created_at: Optional[str] = None


class ShowRuleResponse(BaseModel):
    """Response of the show-rule endpoint."""

    rule: RuleDetail
    actives: Optional[list[ActiveRuleSchema]] = None


class CustomRuleCreate(BaseModel):
    """Request to derive a custom rule from a template."""

    template_key: str = Field(..., description="Key of the template rule, e.g. java:S001")
    custom_key: str = Field(..., description="Rule identifier of the new rule inside the template repository")
    name: str
    markdown_description: str
    severity: str = "MAJOR"
    status: str = "READY"
    params: dict[str, Optional[str]] = Field(default_factory=dict)
    organization: Optional[str] = None


class RuleMetadataUpdate(BaseModel):
    """Request to change organization metadata of a rule.

    Omitted fields are left untouched. ``reset_remediation`` drops every
    remediation override.
    """

    key: str
    organization: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[list[str]] = None
    remediation_fn_type: Optional[str] = None
    remediation_fn_gap_multiplier: Optional[str] = None
    remediation_fn_base_effort: Optional[str] = None
    reset_remediation: bool = False
    note_data: Optional[str] = None
    note_login: Optional[str] = None


class QualityProfileCreate(BaseModel):
    name: str
    language: str
    organization: Optional[str] = None


class QualityProfileDetail(BaseModel):
    id: str
    name: str
    language: str
    organization: str


class ActivateRuleRequest(BaseModel):
    profile_id: UUID
    rule_key: str
    severity: Optional[str] = None
    params: dict[str, Optional[str]] = Field(default_factory=dict)


class DeactivateRuleRequest(BaseModel):
    profile_id: UUID
    rule_key: str
