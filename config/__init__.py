"""Configuration management for the circuit artifact pipeline."""

from .config import (
    STAGE_NAMES,
    PipelineConfig,
    StoreConfig,
    BackendConfig,
    load_config,
    save_config,
)

__all__ = ['STAGE_NAMES', 'PipelineConfig', 'StoreConfig', 'BackendConfig',
           'load_config', 'save_config']
