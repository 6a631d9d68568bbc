"""
Exception hierarchy for the circuit artifact pipeline.

Every failure is local to one stage invocation; the stage name is attached
by the driver when the error crosses a stage boundary.
"""

from pathlib import Path
from typing import Optional, Union


class ZKError(Exception):
    """Base exception for ZK operations"""
    pass


class PipelineError(ZKError):
    """Failure tied to one pipeline stage"""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"{self.stage}: {message}"
        return message


class PrerequisiteMissingError(PipelineError):
    """A required upstream artifact does not exist or is ambiguous"""

    def __init__(self, message: str, stage: Optional[str] = None,
                 path: Optional[Union[str, Path]] = None):
        super().__init__(message, stage)
        self.path = Path(path) if path is not None else None


class ArtifactIntegrityError(PrerequisiteMissingError):
    """Stored bytes no longer match their recorded digest"""

    def __init__(self, message: str, expected: str, actual: str,
                 stage: Optional[str] = None,
                 path: Optional[Union[str, Path]] = None):
        super().__init__(message, stage, path)
        self.expected = expected
        self.actual = actual


class DeserializationError(PipelineError):
    """Artifact bytes do not parse against the expected curve/format"""
    pass


class ConversionError(PipelineError):
    """Verifying key cannot be embedded into the target curve"""
    pass


class ShapeMismatchError(PipelineError):
    """Structural invariant across circuit boundaries violated"""
    pass


class CircuitCompilationError(PipelineError):
    """Circuit compilation failed"""
    pass


class TrustedSetupError(PipelineError):
    """Trusted setup ceremony failed"""
    pass


class StorageError(PipelineError):
    """Filesystem read/write failure"""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None,
                 stage: Optional[str] = None):
        super().__init__(message, stage)
        self.path = Path(path) if path is not None else None


class PipelineCancelled(PipelineError):
    """Run stopped at a stage boundary after an interrupt"""
    pass


# Names used by the proof-system collaborator contract
CompileError = CircuitCompilationError
SetupError = TrustedSetupError
