"""Unit tests for the rule and quality profile repositories."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from rulebook.api.exceptions import ConflictError, NotFoundError
from rulebook.models import ActiveRule, ActiveRuleParam, RuleDefinition, RuleKey, RuleMetadata, RuleParam
from rulebook.repositories import ActiveRuleRepository, QualityProfileRepository, RuleRepository

from tests.conftest import ORGANIZATION, OTHER_ORGANIZATION


class TestRuleRepositoryQueries:
    """Query construction tests with a mocked session."""

    @pytest.fixture
    def mock_session(self):
        return AsyncMock()

    @pytest.fixture
    def repo(self, mock_session):
        return RuleRepository(mock_session)

    def test_repository_initialization(self, mock_session):
        repo = RuleRepository(mock_session)

        assert repo.session == mock_session
        assert repo.model_class is RuleDefinition

    @pytest.mark.asyncio
    async def test_get_by_key_missing(self, repo, mock_session):
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = mock_result

        assert await repo.get_by_key(RuleKey("java", "S999")) is None
        mock_session.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_find_by_key_missing_raises(self, repo, mock_session):
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = mock_result

        with pytest.raises(NotFoundError):
            await repo.find_by_key(RuleKey("java", "S999"), ORGANIZATION)


class TestRuleRepository:
    """Tests against an in-memory database."""

    @pytest.mark.asyncio
    async def test_insert_and_get_by_key(self, test_session):
        repo = RuleRepository(test_session)
        rule_id = await repo.insert_definition(
            RuleDefinition(repository_key="py", rule_key="R1", name="Rule one", language="py")
        )

        definition = await repo.get_by_key(RuleKey("py", "R1"))
        assert definition is not None
        assert definition.id == rule_id
        assert definition.default_tags == []
        assert definition.created_at is not None

    @pytest.mark.asyncio
    async def test_insert_duplicate_key(self, test_session, regex_rule):
        repo = RuleRepository(test_session)

        with pytest.raises(ConflictError):
            await repo.insert_definition(RuleDefinition(repository_key="java", rule_key="S002"))

    @pytest.mark.asyncio
    async def test_update_definition_by_key(self, test_session, regex_rule):
        repo = RuleRepository(test_session)

        updated = await repo.update_definition(
            RuleDefinition(repository_key="java", rule_key="S002", name="Renamed", severity="MAJOR", language="java")
        )

        assert updated.id == regex_rule.id
        assert updated.name == "Renamed"
        assert updated.severity == "MAJOR"
        assert updated.default_tags == []
        assert await repo.count() == 1

    @pytest.mark.asyncio
    async def test_update_unknown_definition(self, test_session):
        with pytest.raises(NotFoundError):
            await RuleRepository(test_session).update_definition(
                RuleDefinition(repository_key="java", rule_key="S404")
            )

    @pytest.mark.asyncio
    async def test_metadata_is_scoped_per_organization(self, test_session, regex_rule):
        repo = RuleRepository(test_session)
        await repo.update_metadata(
            RuleMetadata(rule_id=regex_rule.id, organization_uuid=ORGANIZATION, system_tags=["a"])
        )

        assert (await repo.get_metadata(regex_rule.id, ORGANIZATION)).system_tags == ["a"]
        assert await repo.get_metadata(regex_rule.id, OTHER_ORGANIZATION) is None

    @pytest.mark.asyncio
    async def test_update_metadata_is_an_upsert(self, test_session, regex_rule):
        repo = RuleRepository(test_session)
        await repo.update_metadata(
            RuleMetadata(rule_id=regex_rule.id, organization_uuid=ORGANIZATION, status="BETA", system_tags=[])
        )
        await repo.update_metadata(
            RuleMetadata(rule_id=regex_rule.id, organization_uuid=ORGANIZATION, status="DEPRECATED", system_tags=[])
        )

        rows = await repo.get_all_metadata(regex_rule.id)
        assert len(rows) == 1
        assert rows[0].status == "DEPRECATED"

    @pytest.mark.asyncio
    async def test_update_metadata_unknown_rule(self, test_session):
        repo = RuleRepository(test_session)

        with pytest.raises(NotFoundError):
            await repo.update_metadata(RuleMetadata(rule_id=uuid4(), organization_uuid=ORGANIZATION))

    @pytest.mark.asyncio
    async def test_params_are_ordered_by_name(self, test_session, regex_rule):
        params = await RuleRepository(test_session).get_params(regex_rule.id)

        assert [p.name for p in params] == ["max", "regex"]

    @pytest.mark.asyncio
    async def test_insert_duplicate_param(self, test_session, regex_rule):
        repo = RuleRepository(test_session)

        with pytest.raises(ConflictError):
            await repo.insert_param(regex_rule.id, RuleParam(name="regex", param_type="STRING"))

    @pytest.mark.asyncio
    async def test_insert_param_constraint_conflict(self, test_session, regex_rule):
        repo = RuleRepository(test_session)
        await test_session.commit()

        with patch.object(repo, "get_params", AsyncMock(return_value=[])):
            with pytest.raises(ConflictError) as exc_info:
                await repo.insert_param(regex_rule.id, RuleParam(name="regex", param_type="STRING"))

        assert exc_info.value.details == {"rule_key": "java:S002", "param": "regex"}

    @pytest.mark.asyncio
    async def test_insert_param_unknown_rule(self, test_session):
        with pytest.raises(NotFoundError):
            await RuleRepository(test_session).insert_param(uuid4(), RuleParam(name="p", param_type="STRING"))

    @pytest.mark.asyncio
    async def test_find_by_key_loads_record(self, test_session, regex_rule):
        repo = RuleRepository(test_session)
        await repo.update_metadata(
            RuleMetadata(rule_id=regex_rule.id, organization_uuid=ORGANIZATION, note_data="note", system_tags=[])
        )

        record = await repo.find_by_key(RuleKey("java", "S002"), ORGANIZATION)
        assert record.definition.id == regex_rule.id
        assert record.metadata.note_data == "note"
        assert len(record.params) == 2

        other = await repo.find_by_key(RuleKey("java", "S002"), OTHER_ORGANIZATION)
        assert other.metadata is None

    @pytest.mark.asyncio
    async def test_delete_definition_removes_dependents(self, test_session, regex_rule, java_profile):
        repo = RuleRepository(test_session)
        await repo.update_metadata(
            RuleMetadata(rule_id=regex_rule.id, organization_uuid=ORGANIZATION, system_tags=[])
        )
        active_rule = ActiveRule(profile_id=java_profile.id, rule_id=regex_rule.id, severity="MINOR")
        test_session.add(active_rule)
        await test_session.flush()
        params = await repo.get_params(regex_rule.id)
        test_session.add(
            ActiveRuleParam(
                active_rule_id=active_rule.id,
                rules_parameter_id=params[0].id,
                param_key=params[0].name,
                value="5",
            )
        )
        await test_session.flush()

        await repo.delete_definition(regex_rule.id)

        assert await repo.get_by_key(RuleKey("java", "S002")) is None
        assert await repo.get_all_metadata(regex_rule.id) == []
        assert await repo.get_params(regex_rule.id) == []
        assert await ActiveRuleRepository(test_session).get_by_rule(regex_rule.id) == []

    @pytest.mark.asyncio
    async def test_get_all_ids_pages(self, test_session, template_rule, regex_rule):
        repo = RuleRepository(test_session)

        first = await repo.get_all_ids(offset=0, limit=1)
        second = await repo.get_all_ids(offset=1, limit=1)
        assert len(first) == 1 and len(second) == 1
        assert {first[0], second[0]} == {template_rule.id, regex_rule.id}
        assert await repo.get_all_ids(offset=2, limit=1) == []


class TestQualityProfileRepository:
    @pytest.mark.asyncio
    async def test_get_by_name(self, test_session, java_profile):
        repo = QualityProfileRepository(test_session)

        assert (await repo.get_by_name(ORGANIZATION, "java", "Sonar way")).id == java_profile.id
        assert await repo.get_by_name(OTHER_ORGANIZATION, "java", "Sonar way") is None
