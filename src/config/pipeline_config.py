"""
Write Pipeline Configuration

Loads configuration from config/pipeline.yaml, with environment overrides.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from domain.template_models import value_is_false, value_is_true


@dataclass
class DatabaseSection:
    """Storage backend selection."""
    backend: str = "memory"   # memory | sql
    url: Optional[str] = None


@dataclass
class PipelineConfig:
    """Complete write pipeline configuration."""
    skip_checks: bool = False            # Global bypass of template constraints (bulk imports)
    enforce_min_values: bool = True      # Default strict flag for minimum value counts
    skip_private_values: bool = False    # Hide private values in display values
    templates_path: Optional[str] = None
    log_level: str = "INFO"
    database: DatabaseSection = field(default_factory=DatabaseSection)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create config from dictionary (parsed YAML)."""
        db_data = data.get("database") or {}
        database = DatabaseSection(
            backend=str(db_data.get("backend", "memory")),
            url=db_data.get("url"),
        )

        return cls(
            skip_checks=value_is_true(data.get("skip_checks", False)),
            enforce_min_values=not value_is_false(data.get("enforce_min_values", True)),
            skip_private_values=value_is_true(data.get("skip_private_values", False)),
            templates_path=data.get("templates_path"),
            log_level=str(data.get("log_level", "INFO")).upper(),
            database=database,
        )

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> "PipelineConfig":
        """Load config from YAML file."""
        if path is None:
            path = os.getenv("PIPELINE_CONFIG_PATH", "config/pipeline.yaml")

        config_path = Path(path)
        if not config_path.is_absolute():
            config_path = Path.cwd() / path

        if not config_path.exists():
            # Return default config if file doesn't exist
            return cls()

        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """
        Create config from environment variables.

        Environment variables override YAML config.
        """
        config = cls.from_yaml()

        if os.getenv("PIPELINE_SKIP_CHECKS"):
            config.skip_checks = value_is_true(os.getenv("PIPELINE_SKIP_CHECKS"))

        if os.getenv("PIPELINE_ENFORCE_MIN_VALUES"):
            config.enforce_min_values = not value_is_false(os.getenv("PIPELINE_ENFORCE_MIN_VALUES"))

        if os.getenv("PIPELINE_TEMPLATES_PATH"):
            config.templates_path = os.getenv("PIPELINE_TEMPLATES_PATH")

        if os.getenv("PIPELINE_LOG_LEVEL"):
            config.log_level = os.getenv("PIPELINE_LOG_LEVEL").upper()

        if os.getenv("PIPELINE_STORAGE_BACKEND"):
            config.database.backend = os.getenv("PIPELINE_STORAGE_BACKEND")

        return config


# Global config instance (lazy loaded)
_config: Optional[PipelineConfig] = None


def get_pipeline_config() -> PipelineConfig:
    """Get the global pipeline configuration (lazy loaded)."""
    global _config
    if _config is None:
        _config = PipelineConfig.from_env()
    return _config


def reload_config(path: Optional[str] = None) -> PipelineConfig:
    """Reload configuration from file."""
    global _config
    _config = PipelineConfig.from_yaml(path)
    return _config
