"""Error kinds raised while synthesizing a compiler invocation.

Every error is terminal for the request that raised it.
"""
from __future__ import annotations

from typing import Optional


class SynthesisError(Exception):
    """Base class for all synthesis failures."""


class ManifestResolutionFailure(SynthesisError):
    pass


class GraphAcquisitionFailure(SynthesisError):
    pass


class UnitNotFound(SynthesisError):
    pass


class AmbiguousUnit(SynthesisError):
    pass


class DependencyBuildFailure(SynthesisError):
    def __init__(self, package: str, stderr: Optional[str]) -> None:
        self.package = package
        self.stderr = stderr or ""
        message = f"Failed to check dependency {package}"
        if self.stderr:
            message = f"{message}:\n{self.stderr}"
        super().__init__(message)


class MissingArtifact(SynthesisError):
    pass


class CompilerQueryFailure(SynthesisError):
    pass
