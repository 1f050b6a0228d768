"""
Application configuration using Pydantic settings.

Settings are read once from the environment / .env file. The engine itself
never reads settings directly: an EngineConfig is built from them and
injected into the controller and the step executor.
"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./agent_engine.db"

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Agent Execution Engine"
    DEBUG: bool = False

    # Redis / ARQ
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DATABASE: int = 1  # DB 1 for ARQ (DB 0 for general cache)
    ARQ_QUEUE_NAME: str = "agent-engine"
    WORKER_MAX_JOBS: int = 10
    WORKER_JOB_TIMEOUT: int = 600

    # Completion service
    ANTHROPIC_API_KEY: Optional[str] = None
    DEFAULT_MODEL: str = "claude-sonnet-4-5-20250929"
    MAX_TOKENS_PER_STEP: int = 8096
    COMPLETION_TIMEOUT: float = 300.0  # seconds; must stay below WORKER_JOB_TIMEOUT

    # Repository hosting
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_OWNER: Optional[str] = None
    GITHUB_REPO: Optional[str] = None
    GITHUB_API_BASE: str = "https://api.github.com"
    DEFAULT_BRANCH: str = "main"

    # Engine policy
    MAX_STEPS: int = 50
    DEAD_END_POLICY: str = "complete"  # complete | fail

    class Config:
        extra = "ignore"
        env_file = ".env"
        case_sensitive = True


# Create global settings instance
settings = Settings()


DEAD_END_POLICIES = ("complete", "fail")


@dataclass(frozen=True)
class EngineConfig:
    """Credentials and limits handed to the engine at construction time."""

    anthropic_api_key: Optional[str]
    github_token: Optional[str]
    github_owner: Optional[str]
    github_repo: Optional[str]
    github_api_base: str = "https://api.github.com"
    default_model: str = "claude-sonnet-4-5-20250929"
    default_branch: str = "main"
    max_tokens_per_step: int = 8096
    completion_timeout: float = 300.0
    max_steps: int = 50
    dead_end_policy: str = "complete"

    def __post_init__(self):
        if self.dead_end_policy not in DEAD_END_POLICIES:
            raise ValueError(
                f"DEAD_END_POLICY must be one of {DEAD_END_POLICIES}, got {self.dead_end_policy!r}"
            )

    @classmethod
    def from_settings(cls, source: Settings) -> "EngineConfig":
        return cls(
            anthropic_api_key=source.ANTHROPIC_API_KEY,
            github_token=source.GITHUB_TOKEN,
            github_owner=source.GITHUB_OWNER,
            github_repo=source.GITHUB_REPO,
            github_api_base=source.GITHUB_API_BASE,
            default_model=source.DEFAULT_MODEL,
            default_branch=source.DEFAULT_BRANCH,
            max_tokens_per_step=source.MAX_TOKENS_PER_STEP,
            completion_timeout=source.COMPLETION_TIMEOUT,
            max_steps=source.MAX_STEPS,
            dead_end_policy=source.DEAD_END_POLICY,
        )

    def missing_credentials(self) -> List[str]:
        """Names of the required credentials that are not set."""
        required = {
            "ANTHROPIC_API_KEY": self.anthropic_api_key,
            "GITHUB_TOKEN": self.github_token,
            "GITHUB_OWNER": self.github_owner,
            "GITHUB_REPO": self.github_repo,
        }
        return [name for name, value in required.items() if not value]
