"""Settings: global configuration for plugctl"""

import json
import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

ROOT_ENV = "PLUGCTL_ROOT"
OS_ENV = "PLUGCTL_OS"
ARCH_ENV = "PLUGCTL_ARCH"


def get_root_directory() -> Path:
    """Base directory of the plugin layout (PLUGCTL_ROOT or ~/.plugctl)"""
    override = os.environ.get(ROOT_ENV)
    if override:
        return Path(override).expanduser().absolute()
    return Path.home() / ".plugctl"


@dataclass
class Settings:
    """Settings persisted in <root>/settings.json"""

    fetch_timeout: int = 300  # seconds
    max_download_size: int = 200 * 1024 * 1024  # 200MB
    http_retries: int = 0  # flaky networks are the caller's concern
    lock_timeout: float = 10.0  # seconds
    log_level: str = "INFO"

    def to_dict(self) -> Dict:
        """Convert to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "Settings":
        """Create from dictionary"""
        defaults = cls()
        return cls(
            fetch_timeout=int(data.get("fetch_timeout", defaults.fetch_timeout)),
            max_download_size=int(data.get("max_download_size", defaults.max_download_size)),
            http_retries=int(data.get("http_retries", defaults.http_retries)),
            lock_timeout=float(data.get("lock_timeout", defaults.lock_timeout)),
            log_level=str(data.get("log_level", defaults.log_level)),
        )


class SettingsManager:
    """Manage settings persistence"""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or get_root_directory() / "settings.json"

    def load(self) -> Settings:
        """Load settings from file, falling back to defaults"""
        if not self.settings_path.exists():
            return Settings()

        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Settings.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load settings from {self.settings_path}: {e}")
            return Settings()

    def save(self, settings: Settings) -> None:
        """Save settings to file"""
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.settings_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)


# Global instance
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """Get global settings manager"""
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


def load_settings() -> Settings:
    """Load settings (convenience function)"""
    return get_settings_manager().load()
