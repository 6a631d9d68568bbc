"""
Zero-Knowledge Artifact Module for the Vote Circuit Pipeline
Curves, tagged artifact buffers, proof-system backends and errors
"""

from .curves import Curve, CurveParams, CURVE_PARAMS
from .artifacts import (
    ARTIFACT_TYPES,
    ConstraintSystem,
    ProvingKey,
    VerifyingKey,
)
from .backend import (
    ProofBackend,
    ReferenceBackend,
    ExternalToolBackend,
    create_backend,
)
from .circom import parse_snarkjs_vkey
from .errors import (
    ZKError,
    PipelineError,
    PrerequisiteMissingError,
    ArtifactIntegrityError,
    DeserializationError,
    ConversionError,
    ShapeMismatchError,
    CircuitCompilationError,
    TrustedSetupError,
    StorageError,
    PipelineCancelled,
)

__version__ = "1.0.0"

__all__ = [
    # Curves
    'Curve',
    'CurveParams',
    'CURVE_PARAMS',

    # Artifacts
    'ARTIFACT_TYPES',
    'ConstraintSystem',
    'ProvingKey',
    'VerifyingKey',
    'parse_snarkjs_vkey',

    # Backends
    'ProofBackend',
    'ReferenceBackend',
    'ExternalToolBackend',
    'create_backend',

    # Exceptions
    'ZKError',
    'PipelineError',
    'PrerequisiteMissingError',
    'ArtifactIntegrityError',
    'DeserializationError',
    'ConversionError',
    'ShapeMismatchError',
    'CircuitCompilationError',
    'TrustedSetupError',
    'StorageError',
    'PipelineCancelled',
]
