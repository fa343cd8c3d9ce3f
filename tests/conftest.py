"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rulebook.api.main import app
from rulebook.config import Settings, get_settings
from rulebook.database import Base, get_db
from rulebook.models import (
    QualityProfile,
    RuleDefinition,
    RuleParam,
)
from rulebook.search import InMemorySearchIndex, get_search_index


# Test database URL (use in-memory SQLite for unit tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ORGANIZATION = "org-1"
OTHER_ORGANIZATION = "org-2"


def get_test_settings() -> Settings:
    """Override settings for testing."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        environment="test",
        log_level="WARNING",
        default_organization=ORGANIZATION,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def search_index() -> InMemorySearchIndex:
    """Fresh, empty search index."""
    return InMemorySearchIndex()


@pytest_asyncio.fixture(scope="function")
async def client(
    test_session: AsyncSession,
    search_index: InMemorySearchIndex,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_search_index] = lambda: search_index

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def template_rule(test_session: AsyncSession) -> RuleDefinition:
    """Java template rule S001 declaring a ``regex`` parameter."""
    rule = RuleDefinition(
        repository_key="java",
        rule_key="S001",
        name="Regular expression template",
        description="Flags code matching a *regular expression*",
        description_format="MARKDOWN",
        severity="MAJOR",
        rule_type="CODE_SMELL",
        config_key="S001",
        language="java",
        default_tags=["convention"],
        is_template=True,
        default_remediation_function="LINEAR",
        default_remediation_gap_multiplier="5min",
    )
    test_session.add(rule)
    await test_session.flush()

    test_session.add(
        RuleParam(
            rule_id=rule.id,
            name="regex",
            param_type="STRING",
            description="Regular expression to match",
            default_value=".*",
        )
    )
    test_session.add(
        RuleParam(
            rule_id=rule.id,
            name="message",
            param_type="STRING",
            description="Issue message",
            default_value=None,
        )
    )
    await test_session.commit()
    return rule


@pytest_asyncio.fixture
async def regex_rule(test_session: AsyncSession) -> RuleDefinition:
    """Activable Java rule S002 with a ``regex`` and a ``max`` parameter."""
    rule = RuleDefinition(
        repository_key="java",
        rule_key="S002",
        name="Forbidden pattern",
        description="<p>Avoid this pattern</p>",
        description_format="HTML",
        severity="MINOR",
        rule_type="BUG",
        language="java",
        default_tags=["pitfall"],
        default_remediation_function="LINEAR_OFFSET",
        default_remediation_gap_multiplier="5d",
        default_remediation_base_effort="10h",
    )
    test_session.add(rule)
    await test_session.flush()

    test_session.add(RuleParam(rule_id=rule.id, name="regex", param_type="STRING", default_value=".*"))
    test_session.add(RuleParam(rule_id=rule.id, name="max", param_type="INTEGER", default_value="10"))
    await test_session.commit()
    return rule


@pytest_asyncio.fixture
async def java_profile(test_session: AsyncSession) -> QualityProfile:
    profile = QualityProfile(organization_uuid=ORGANIZATION, name="Sonar way", language="java")
    test_session.add(profile)
    await test_session.commit()
    return profile
