"""Unit tests for rule resolution (definition merged with organization metadata)."""

import pytest
from uuid import uuid4

from rulebook.api.exceptions import NotFoundError
from rulebook.models import RuleDefinition, RuleKey, RuleMetadata, RuleParam
from rulebook.repositories.rule import RuleRecord
from rulebook.services.remediation import Provenance
from rulebook.services.rule_resolution import (
    RuleResolutionService,
    effective_tags,
    render_description,
    resolve,
)

from tests.conftest import ORGANIZATION, OTHER_ORGANIZATION


def make_definition(**kwargs) -> RuleDefinition:
    values = dict(
        id=uuid4(),
        repository_key="java",
        rule_key="S100",
        name="Method names",
        description="Method names should comply with a naming convention",
        description_format="HTML",
        severity="MINOR",
        rule_type="CODE_SMELL",
        language="java",
        default_tags=["convention"],
        is_template=False,
    )
    values.update(kwargs)
    return RuleDefinition(**values)


def make_metadata(**kwargs) -> RuleMetadata:
    values = dict(organization_uuid=ORGANIZATION, system_tags=[])
    values.update(kwargs)
    return RuleMetadata(**values)


class TestResolveRemediation:
    """Debt resolution scenarios on the merged view."""

    def test_default_debt(self):
        definition = make_definition(
            default_remediation_function="LINEAR_OFFSET",
            default_remediation_gap_multiplier="5d",
            default_remediation_base_effort="10h",
        )

        view = resolve(RuleRecord(definition=definition), ORGANIZATION)

        assert view.remediation.as_settings().function == "LINEAR_OFFSET"
        assert view.remediation.gap_multiplier_value == "5d"
        assert view.remediation.base_effort_value == "10h"
        assert view.remediation.function.provenance == Provenance.DEFAULT
        assert view.is_remediation_overridden is False

    def test_overridden_debt(self):
        definition = make_definition(
            default_remediation_function="LINEAR",
            default_remediation_gap_multiplier="5min",
        )
        metadata = make_metadata(
            remediation_function="LINEAR_OFFSET",
            remediation_gap_multiplier="5d",
            remediation_base_effort="10h",
        )

        view = resolve(RuleRecord(definition=definition, metadata=metadata), ORGANIZATION)

        assert view.remediation.function_value == "LINEAR_OFFSET"
        assert view.remediation.gap_multiplier_value == "5d"
        assert view.remediation.base_effort_value == "10h"
        assert view.is_remediation_overridden is True
        # Legacy fields mirror the effective triple
        assert view.remediation_function == "LINEAR_OFFSET"
        assert view.remediation_coefficient == "5d"
        assert view.remediation_offset == "10h"

    def test_override_without_default(self):
        metadata = make_metadata(remediation_function="CONSTANT_ISSUE", remediation_base_effort="1h")

        view = resolve(RuleRecord(definition=make_definition(), metadata=metadata), ORGANIZATION)

        assert view.default_remediation.is_empty()
        assert view.remediation_function == "CONSTANT_ISSUE"
        assert view.remediation_coefficient is None
        assert view.remediation_offset == "1h"
        assert view.is_remediation_overridden is True

    def test_overriding_function_does_not_keep_stale_default(self):
        definition = make_definition(
            default_remediation_function="LINEAR_OFFSET",
            default_remediation_gap_multiplier="5d",
            default_remediation_base_effort="10h",
        )
        metadata = make_metadata(remediation_function="CONSTANT_ISSUE", remediation_base_effort="2h")

        view = resolve(RuleRecord(definition=definition, metadata=metadata), ORGANIZATION)

        assert view.remediation_function == "CONSTANT_ISSUE"
        assert view.remediation_coefficient is None
        assert view.remediation_offset == "2h"

    def test_no_debt(self):
        view = resolve(RuleRecord(definition=make_definition()), ORGANIZATION)

        assert view.remediation.is_empty
        assert view.remediation_function is None
        assert view.remediation_coefficient is None
        assert view.remediation_offset is None
        assert view.is_remediation_overridden is False


class TestResolveMetadata:
    def test_status_defaults_to_ready(self):
        assert resolve(RuleRecord(definition=make_definition()), ORGANIZATION).status == "READY"

    def test_status_from_metadata(self):
        view = resolve(
            RuleRecord(definition=make_definition(), metadata=make_metadata(status="DEPRECATED")),
            ORGANIZATION,
        )
        assert view.status == "DEPRECATED"

    def test_tags_are_union(self):
        view = resolve(
            RuleRecord(
                definition=make_definition(default_tags=["convention", "style"]),
                metadata=make_metadata(system_tags=["style", "team-a"]),
            ),
            ORGANIZATION,
        )

        assert view.tags == ("convention", "style", "team-a")
        assert view.default_tags == ("convention", "style")
        assert view.system_tags == ("style", "team-a")

    def test_effective_tags_handles_none(self):
        assert effective_tags(None, None) == ()
        assert effective_tags(["b"], ["a"]) == ("a", "b")

    def test_note(self):
        view = resolve(
            RuleRecord(
                definition=make_definition(),
                metadata=make_metadata(note_data="Applies to legacy code", note_user_login="alice"),
            ),
            ORGANIZATION,
        )
        assert view.note_data == "Applies to legacy code"
        assert view.note_user_login == "alice"

    def test_params(self):
        definition = make_definition()
        params = [RuleParam(name="format", param_type="STRING", description="*Regexp*", default_value="^[a-z]+$")]

        view = resolve(RuleRecord(definition=definition, params=params), ORGANIZATION)

        assert view.param("format").default_value == "^[a-z]+$"
        assert view.param("format").html_description == "<strong>Regexp</strong>"
        assert view.param("missing") is None


class TestRenderDescription:
    def test_html_is_kept(self):
        assert render_description("<p>Hello</p>", "HTML") == "<p>Hello</p>"

    def test_markdown_is_rendered(self):
        assert render_description("<b>x</b>", "MARKDOWN") == "&lt;b&gt;x&lt;/b&gt;"

    def test_empty(self):
        assert render_description(None, "MARKDOWN") == ""

    def test_markdown_view_exposes_source(self):
        view = resolve(
            RuleRecord(definition=make_definition(description="*a*", description_format="MARKDOWN")),
            ORGANIZATION,
        )
        assert view.markdown_description == "*a*"
        assert view.html_description == "<strong>a</strong>"


class TestRuleResolutionService:
    """Tests against an in-memory database."""

    @pytest.mark.asyncio
    async def test_get_view_unknown_key(self, test_session):
        with pytest.raises(NotFoundError):
            await RuleResolutionService(test_session).get_view(RuleKey("java", "nope"), ORGANIZATION)

    @pytest.mark.asyncio
    async def test_view_is_organization_scoped(self, test_session, regex_rule):
        test_session.add(
            RuleMetadata(
                rule_id=regex_rule.id,
                organization_uuid=ORGANIZATION,
                status="BETA",
                remediation_function="CONSTANT_ISSUE",
                remediation_base_effort="1h",
                system_tags=["team-a"],
            )
        )
        await test_session.commit()
        service = RuleResolutionService(test_session)

        own = await service.get_view(RuleKey("java", "S002"), ORGANIZATION)
        other = await service.get_view(RuleKey("java", "S002"), OTHER_ORGANIZATION)

        assert own.status == "BETA"
        assert own.tags == ("pitfall", "team-a")
        assert own.remediation_function == "CONSTANT_ISSUE"
        assert other.status == "READY"
        assert other.tags == ("pitfall",)
        assert other.remediation.as_settings().function == "LINEAR_OFFSET"

    @pytest.mark.asyncio
    async def test_write_is_visible_to_next_read(self, test_session, regex_rule):
        service = RuleResolutionService(test_session)
        before = await service.get_view(RuleKey("java", "S002"), ORGANIZATION)

        test_session.add(
            RuleMetadata(rule_id=regex_rule.id, organization_uuid=ORGANIZATION, status="DEPRECATED", system_tags=[])
        )
        await test_session.commit()
        after = await service.get_view(RuleKey("java", "S002"), ORGANIZATION)

        assert before.status == "READY"
        assert after.status == "DEPRECATED"

    @pytest.mark.asyncio
    async def test_show_rule_without_actives(self, test_session, regex_rule):
        result = await RuleResolutionService(test_session).show_rule(RuleKey("java", "S002"), ORGANIZATION)

        assert result.rule.key == RuleKey("java", "S002")
        assert result.actives is None

    @pytest.mark.asyncio
    async def test_show_rule_with_no_actives(self, test_session, regex_rule):
        result = await RuleResolutionService(test_session).show_rule(
            RuleKey("java", "S002"), ORGANIZATION, include_actives=True
        )

        assert result.actives == []

    @pytest.mark.asyncio
    async def test_get_view_by_id(self, test_session, regex_rule):
        view = await RuleResolutionService(test_session).get_view_by_id(regex_rule.id, ORGANIZATION)

        assert view.key == RuleKey("java", "S002")
        assert [p.name for p in view.params] == ["max", "regex"]
