"""
Store configuration.

Resolves where the database lives and how the engine is tuned. Values come
from code, a dict (``from_dict``) or the environment (``from_env``):

    RDF_EAVTO_DB_PATH     explicit database file (or ":memory:")
    RDF_EAVTO_APP_NAME    directory name under the OS data directory
    RDF_EAVTO_THREADS     DuckDB worker threads
    RDF_EAVTO_LOG_LEVEL   log level used by the command line
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "rdf-eavto"
DB_FILE_NAME = "eavto.duckdb"
MEMORY_PATH = ":memory:"

ENV_DB_PATH = "RDF_EAVTO_DB_PATH"
ENV_APP_NAME = "RDF_EAVTO_APP_NAME"
ENV_THREADS = "RDF_EAVTO_THREADS"
ENV_LOG_LEVEL = "RDF_EAVTO_LOG_LEVEL"


def data_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    """OS-specific application data directory."""
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA")
        root = Path(base) if base else Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        root = Path.home() / "Library" / "Application Support"
    else:
        base = os.environ.get("XDG_DATA_HOME")
        root = Path(base) if base else Path.home() / ".local" / "share"
    return root / app_name


def default_db_path(app_name: str = DEFAULT_APP_NAME) -> Path:
    return data_dir(app_name) / DB_FILE_NAME


@dataclass
class StoreConfig:
    """Configuration for one store."""
    db_path: Optional[Union[str, Path]] = None
    app_name: str = DEFAULT_APP_NAME
    threads: Optional[int] = None
    log_level: str = "INFO"
    seed_origins: bool = True

    def resolve_db_path(self) -> Union[str, Path]:
        """The database location; ``":memory:"`` for in-memory stores."""
        if self.db_path is None:
            return default_db_path(self.app_name)
        if str(self.db_path) == MEMORY_PATH:
            return MEMORY_PATH
        return Path(self.db_path).expanduser()

    @property
    def in_memory(self) -> bool:
        return self.resolve_db_path() == MEMORY_PATH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "db_path": str(self.db_path) if self.db_path is not None else None,
            "app_name": self.app_name,
            "threads": self.threads,
            "log_level": self.log_level,
            "seed_origins": self.seed_origins,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoreConfig":
        threads = data.get("threads")
        return cls(
            db_path=data.get("db_path"),
            app_name=data.get("app_name", DEFAULT_APP_NAME),
            threads=int(threads) if threads is not None else None,
            log_level=str(data.get("log_level", "INFO")).upper(),
            seed_origins=bool(data.get("seed_origins", True)),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StoreConfig":
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        if env.get(ENV_DB_PATH):
            data["db_path"] = env[ENV_DB_PATH]
        if env.get(ENV_APP_NAME):
            data["app_name"] = env[ENV_APP_NAME]
        if env.get(ENV_THREADS):
            try:
                data["threads"] = int(env[ENV_THREADS])
            except ValueError:
                logger.warning(
                    "Ignoring %s=%r: not an integer", ENV_THREADS, env[ENV_THREADS]
                )
        if env.get(ENV_LOG_LEVEL):
            data["log_level"] = env[ENV_LOG_LEVEL]
        return cls.from_dict(data)
