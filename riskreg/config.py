"""Settings loaded from the environment."""
import logging
import os
from dataclasses import dataclass

from riskreg.models.version import VersionNumber


@dataclass(frozen=True)
class WorkflowPolicy:
    """
    Configuration points of the approval workflow.

    final_approval_forces_major: second-level approval bumps MAJOR regardless
        of the bump chosen at submission.
    require_distinct_approvers: the first-level approver of a cycle cannot
        also give the second-level approval, and reviewer_ref/approver_ref
        cannot name the same identity.
    """
    final_approval_forces_major: bool = False
    require_distinct_approvers: bool = False
    initial_version: VersionNumber = VersionNumber(0, 1)


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str
    log_level: str
    final_approval_forces_major: bool
    require_distinct_approvers: bool
    initial_version: str

    def workflow_policy(self) -> WorkflowPolicy:
        return WorkflowPolicy(
            final_approval_forces_major=self.final_approval_forces_major,
            require_distinct_approvers=self.require_distinct_approvers,
            initial_version=VersionNumber.parse(self.initial_version)
        )


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    # Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
    url = _getenv("DATABASE_URL", "sqlite:///./riskreg.db")
    # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def load_settings() -> Settings:
    return Settings(
        env=_getenv("ENV", "development"),
        database_url=_database_url(),
        log_level=_getenv("RISKREG_LOG_LEVEL", "INFO").upper(),
        final_approval_forces_major=_getenv_bool("RISKREG_FINAL_APPROVAL_FORCES_MAJOR"),
        require_distinct_approvers=_getenv_bool("RISKREG_REQUIRE_DISTINCT_APPROVERS"),
        initial_version=_getenv("RISKREG_INITIAL_VERSION", "0.1"),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
