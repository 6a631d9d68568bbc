"""Artifact persistence for the circuit pipeline."""

from .artifact_store import (
    ARTIFACT_EXTENSIONS,
    ArtifactStore,
    StageManifest,
    StageVerification,
    is_digest,
)

__all__ = [
    'ARTIFACT_EXTENSIONS',
    'ArtifactStore',
    'StageManifest',
    'StageVerification',
    'is_digest',
]
