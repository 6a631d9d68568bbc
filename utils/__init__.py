"""Logging, hashing and run-report helpers for the circuit artifact pipeline."""

from .utils import (
    PerformanceMonitor,
    StageMetrics,
    compute_hash,
    create_performance_report,
    format_bytes,
    format_duration,
    save_results,
    setup_logging,
)

__all__ = [
    'PerformanceMonitor',
    'StageMetrics',
    'compute_hash',
    'create_performance_report',
    'format_bytes',
    'format_duration',
    'save_results',
    'setup_logging',
]
