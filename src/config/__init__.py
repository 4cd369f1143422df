"""Configuration package for the template write pipeline."""

from .pipeline_config import PipelineConfig, get_pipeline_config, reload_config

__all__ = ["PipelineConfig", "get_pipeline_config", "reload_config"]
