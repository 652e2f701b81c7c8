"""
Configuration Management Module
Handles loading and validation of environment variables and settings
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_CLOSE_MESSAGE = "Auto-closing this recruit thread after 7 days."
LOG_FORMATS = ("text", "json")


@dataclass
class StorageConfig:
    """Locations of the durable stores"""
    data_dir: Path
    registry_file: str
    config_file: str
    war_cache_dir: str

    @property
    def registry_path(self) -> Path:
        return self.data_dir / self.registry_file

    @property
    def config_path(self) -> Path:
        return self.data_dir / self.config_file

    @property
    def war_cache_path(self) -> Path:
        return self.data_dir / self.war_cache_dir


@dataclass
class SessionConfig:
    """Configuration for interactive DM sessions"""
    ttl_seconds: int
    max_sessions: int


@dataclass
class SweepConfig:
    """Configuration for the stale thread sweeper"""
    enabled: bool
    interval_seconds: int
    stale_after_days: float
    close_message: str


@dataclass
class SystemConfig:
    """Configuration for system settings"""
    log_level: str
    log_file: str
    log_format: str


class Config:
    """Main configuration class"""

    def __init__(self, env_file: str = ".env", base_dir: Optional[Path] = None):
        """
        Initialize configuration from environment file

        Args:
            env_file: Path to environment file (default: .env)
            base_dir: Directory the default data directory is resolved
                against (default: current working directory)
        """
        load_dotenv(env_file)

        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.storage = self._load_storage_config()
        self.sessions = self._load_session_config()
        self.sweep = self._load_sweep_config()
        self.system = self._load_system_config()

    def _load_storage_config(self) -> StorageConfig:
        """Load storage locations"""
        data_dir = os.getenv("DATA_DIR")
        return StorageConfig(
            data_dir=Path(data_dir) if data_dir else self.base_dir / "data",
            registry_file=os.getenv("REGISTRY_FILE", "open-recruit-applicants.json"),
            config_file=os.getenv("RECRUIT_CONFIG_FILE", "recruit-config.json"),
            war_cache_dir=os.getenv("WAR_CACHE_DIR", "cwl"),
        )

    def _load_session_config(self) -> SessionConfig:
        """Load session cache configuration"""
        return SessionConfig(
            ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "3600")),
            max_sessions=int(os.getenv("SESSION_MAX_ENTRIES", "1024")),
        )

    def _load_sweep_config(self) -> SweepConfig:
        """Load sweeper configuration"""
        return SweepConfig(
            enabled=self._get_bool("SWEEP_ENABLED", True),
            interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600")),
            stale_after_days=float(os.getenv("SWEEP_STALE_AFTER_DAYS", "7")),
            close_message=os.getenv("SWEEP_CLOSE_MESSAGE", DEFAULT_CLOSE_MESSAGE),
        )

    def _load_system_config(self) -> SystemConfig:
        """Load system configuration"""
        return SystemConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/recruit_coordinator.log"),
            log_format=os.getenv("LOG_FORMAT", "text").strip().lower(),
        )

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Convert environment variable to boolean"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    def validate(self) -> bool:
        """
        Validate configuration

        Returns:
            True if configuration is valid

        Raises:
            ValueError: If configuration is invalid
        """
        if self.sessions.ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive")

        if self.sessions.max_sessions <= 0:
            raise ValueError("SESSION_MAX_ENTRIES must be positive")

        if self.sweep.interval_seconds <= 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be positive")

        if self.sweep.stale_after_days <= 0:
            raise ValueError("SWEEP_STALE_AFTER_DAYS must be positive")

        if self.system.log_format not in LOG_FORMATS:
            raise ValueError(
                f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)} "
                f"(got {self.system.log_format!r})"
            )

        return True
