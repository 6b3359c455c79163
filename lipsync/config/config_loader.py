"""Configuration loader for LipSyncEngine"""

import logging
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
import os


logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Config:
    """Configuration manager for LipSyncEngine"""

    def __init__(self, config_path: str = None):
        if config_path is None:
            config_path = self._find_default_config()

        self.config_path = Path(config_path) if config_path else None
        self._config = self._load_config()

    @staticmethod
    def _find_default_config() -> Optional[str]:
        """Locate the YAML file for the current LIPSYNC_ENV"""
        env = os.getenv('LIPSYNC_ENV', 'development')
        # Environment-specific config first, working directory before project root
        for base in (Path.cwd(), PROJECT_ROOT):
            for name in (f"config/config.{env}.yaml", "config/config.yaml"):
                candidate = base / name
                if candidate.exists():
                    return str(candidate)
        return None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if self.config_path is None:
            logger.warning("No config file found, using built-in defaults")
            return {}

        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation

        Args:
            key: Configuration key in dot notation (e.g., 'lipsync.smoothing_factor')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access"""
        return self.get(key)

    def validate(self) -> None:
        """Validate configuration values

        Builds every settings object once so range errors surface at startup.

        Raises:
            ConfigurationError: If any value is out of range
        """
        from lipsync.models.settings import AudioAnalyzerConfig, LipSyncConfig, IntakeConfig

        analyzer = AudioAnalyzerConfig.from_config(self)
        LipSyncConfig.from_config(self)
        intake = IntakeConfig.from_config(self)

        if intake.buffer_size != analyzer.fft_size:
            logger.warning(
                f"Intake buffer size {intake.buffer_size} differs from FFT size "
                f"{analyzer.fft_size}; blocks will be rejected by the formant path"
            )


# Global config instance
config = Config()
