"""
Database session scoping for CLI commands.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session

from .database import DatabaseManager


class CLISessionManager:
    """Hands out one scoped session per command invocation."""

    def __init__(self, database_url: Optional[str] = None):
        self.db_manager = DatabaseManager(database_url)
        self.db_manager.initialize_database()

    @property
    def database_url(self) -> str:
        return self.db_manager.database_url

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Yield a session; roll back on error and always close."""
        session = self.db_manager.get_session()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


_cli_session_manager = None


def get_cli_session_manager(database_url: Optional[str] = None) -> CLISessionManager:
    """Get the process-wide CLI session manager."""
    global _cli_session_manager
    if _cli_session_manager is None:
        _cli_session_manager = CLISessionManager(database_url)
    return _cli_session_manager
