"""Persistence layer for stagegate runs."""

from __future__ import annotations

from typing import Optional

from ..config import StagegateConfig, load_config
from .inmemory import InMemoryRunRepository
from .models import HistoryEntry, RunRecord
from .repository import Mutator, RunRepository, apply_mutation
from .sqlite import SQLiteRunRepository

_repository_instance: RunRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[StagegateConfig] = None
) -> RunRepository:
    """Factory function to obtain a run repository.

    The repository backend is selected based on ``database_url`` when given,
    otherwise on ``config.database_url``. Without an explicit ``config`` the
    configuration comes from :func:`load_config`, which applies the
    ``STAGEGATE_DATABASE_URL`` and ``DATABASE_URL`` overrides. When no database
    is configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = database_url or config.database_url

    if not database_url:
        _repository_instance = InMemoryRunRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteRunRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresRunRepository

        _repository_instance = PostgresRunRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "HistoryEntry",
    "Mutator",
    "RunRecord",
    "RunRepository",
    "InMemoryRunRepository",
    "SQLiteRunRepository",
    "apply_mutation",
    "get_repository",
]
