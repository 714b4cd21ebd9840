"""Storage backend selection."""

from loguru import logger

from ...core.config import Settings, settings as default_settings
from .base import StorageBase
from .memory import InMemoryStorage
from .sqlite import SQLiteStorage


def build_storage(config: Settings | None = None) -> StorageBase:
    config = config or default_settings
    backend = config.storage_backend.lower()

    if backend == "memory":
        logger.warning("Using in-memory storage; rows are lost on restart")
        return InMemoryStorage()
    if backend == "sqlite":
        logger.info("Using SQLite storage", db_path=config.database_path)
        return SQLiteStorage(db_path=config.database_path)
    raise ValueError(f"Unknown STORAGE_BACKEND '{config.storage_backend}' (expected sqlite or memory)")
