"""Configuration management for Deprecated Tracker.

Loads environment variables and provides centralized config access.
Project-level scan settings live in `.deprecatedtrackerrc`; see
policy.tracker_config.ConfigReader.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

__version__ = "1.0.0"

DEFAULT_STATE_DIR = ".deprecated_tracker"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_path: str | Path | None = None):
        """Initialize config by loading a .env file.

        Args:
            env_path: Explicit .env file; defaults to ./.env of the working directory
        """
        load_dotenv(env_path or Path.cwd() / ".env")

    @property
    def state_dir_name(self) -> str:
        """Directory (relative to the project root) holding ignore rules, tags and history.

        Returns:
            Directory name, `.deprecated_tracker` unless DEPTRACKER_STATE_DIR is set
        """
        return os.getenv("DEPTRACKER_STATE_DIR", DEFAULT_STATE_DIR)

    def state_dir(self, project_root: str | Path) -> Path:
        return Path(project_root) / self.state_dir_name

    @property
    def max_workers(self) -> int:
        """Parser threads.

        Priority:
        1. DEPTRACKER_MAX_WORKERS environment variable
        2. min(8, cpu_count)

        Returns:
            Positive worker count
        """
        value = os.getenv("DEPTRACKER_MAX_WORKERS")
        if value:
            try:
                return max(1, int(value))
            except ValueError:
                pass
        return min(8, os.cpu_count() or 1)

    @property
    def log_level(self) -> str:
        """Get loguru level for stderr diagnostics.

        Returns:
            Level name, WARNING by default
        """
        level = os.getenv("DEPTRACKER_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        return level if level in LOG_LEVELS else DEFAULT_LOG_LEVEL


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config
