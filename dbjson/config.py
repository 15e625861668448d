"""
Configuration management for dbjson.

All configuration is done via environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The local and remote replicas never resolve to the same file
    - The root key is shared by both replicas

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Changing root_key on an existing data set hides all stored history
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_ROOT_KEY = "database"


class ReplicaBackend(Enum):
    """Supported replica backends."""

    FILE = "file"
    MEMORY = "memory"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Replica storage configuration.

    Attributes:
        backend: Replica backend (file or memory)
        data_dir: Directory holding the replica documents
        local_file: File name of the writable local replica
        remote_file: File name of the read-only remote mirror
        root_key: Top-level key every path is rooted at
        fsync: Whether to fsync before replacing a document
        indent: JSON indent used when saving (0 = compact)
        reload_remote: Re-read the remote document when it changes on disk
    """

    backend: ReplicaBackend = ReplicaBackend.FILE
    data_dir: str = "."
    local_file: str = "localdb.json"
    remote_file: str = "remotedb.json"
    root_key: str = DEFAULT_ROOT_KEY
    fsync: bool = True
    indent: int = 2
    reload_remote: bool = True

    @property
    def local_path(self) -> Path:
        return Path(self.data_dir) / self.local_file

    @property
    def remote_path(self) -> Path:
        return Path(self.data_dir) / self.remote_file

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("DBJSON_BACKEND", "file").lower()
        try:
            backend = ReplicaBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid DBJSON_BACKEND '{backend_str}'. Must be one of: file, memory")

        return cls(
            backend=backend,
            data_dir=os.getenv("DBJSON_DATA_DIR", "."),
            local_file=os.getenv("DBJSON_LOCAL_FILE", "localdb.json"),
            remote_file=os.getenv("DBJSON_REMOTE_FILE", "remotedb.json"),
            root_key=os.getenv("DBJSON_ROOT_KEY", DEFAULT_ROOT_KEY),
            fsync=_env_bool("DBJSON_FSYNC", "true"),
            indent=int(os.getenv("DBJSON_INDENT", "2")),
            reload_remote=_env_bool("DBJSON_RELOAD_REMOTE", "true"),
        )


@dataclass(frozen=True)
class IdentityConfig:
    """Acting identity configuration.

    Attributes:
        username: Username to establish at startup (None = host sets it later)
    """

    username: str | None = None

    @classmethod
    def from_env(cls) -> IdentityConfig:
        """Load configuration from environment variables."""
        return cls(username=os.getenv("DBJSON_USERNAME") or None)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class ServerConfig:
    """Complete dbjson configuration.

    Attributes:
        storage: Replica storage configuration
        identity: Startup identity configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            identity=IdentityConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        storage = self.storage
        if not storage.root_key:
            raise ValueError("DBJSON_ROOT_KEY must not be empty")
        if "." in storage.root_key:
            raise ValueError("DBJSON_ROOT_KEY must not contain '.'")

        if storage.backend == ReplicaBackend.FILE:
            if not storage.local_file or not storage.remote_file:
                raise ValueError("DBJSON_LOCAL_FILE and DBJSON_REMOTE_FILE are required when DBJSON_BACKEND=file")
            if storage.local_path.resolve() == storage.remote_path.resolve():
                raise ValueError("Local and remote replicas must be different files")
            if not os.path.exists(storage.data_dir):
                logger.warning(
                    f"Data directory does not exist: {storage.data_dir}. "
                    "It will be created on first write."
                )

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "dbjson configuration loaded",
            extra={
                "backend": self.storage.backend.value,
                "local_path": str(self.storage.local_path)
                if self.storage.backend == ReplicaBackend.FILE
                else None,
                "remote_path": str(self.storage.remote_path)
                if self.storage.backend == ReplicaBackend.FILE
                else None,
                "root_key": self.storage.root_key,
                "identity_preset": self.identity.username is not None,
                "log_level": self.observability.log_level,
            },
        )
