"""Stage sequencing for the circuit artifact pipeline."""

from .driver import (
    STAGE_LABELS,
    CancellationToken,
    PipelineDriver,
    RunContext,
    StageResult,
    StageState,
    fetch_ballot_vkey,
)

__all__ = [
    'STAGE_LABELS',
    'CancellationToken',
    'PipelineDriver',
    'RunContext',
    'StageResult',
    'StageState',
    'fetch_ballot_vkey',
]
