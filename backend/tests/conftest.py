"""
Shared fixtures: in-memory SQLite database, engine config and fakes.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import agent_engine.models  # noqa: F401  (register tables)
from agent_engine.config import EngineConfig
from agent_engine.database import Base
from agent_engine.models.agent import Agent
from agent_engine.schemas.conversation import ConversationTurn
from agent_engine.services.execution_store import ExecutionStore

from fakes import FakeRepository, RecordingScheduler

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def engine_config():
    return EngineConfig(
        anthropic_api_key="sk-ant-test",
        github_token="ghp_test",
        github_owner="acme",
        github_repo="web",
    )


@pytest.fixture
def agent(db):
    """Register SAM."""
    a = Agent(name="sam", role="backend")
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def repository():
    return FakeRepository({
        "README.md": "# web\n",
        "src/app.py": "print('remote')\n",
        "old.txt": "obsolete\n",
    })


@pytest.fixture
def make_execution(db, agent):
    """Factory for running executions created directly through the store."""

    def _make(task_id: str = "AGT-1", max_steps: int = 50, branch: str = "main"):
        return ExecutionStore(db).create(
            task_id=task_id,
            agent_id=agent.id,
            agent_name="SAM",
            model="claude-sonnet-4-5-20250929",
            repo="acme/web",
            branch=branch,
            system_prompt="You are SAM.",
            initial_turns=[ConversationTurn(role="user", content=f"Task {task_id}")],
            max_steps=max_steps,
        )

    return _make
