"""
Transpiler error taxonomy.

Contains:
    - TranspilerError: Base class, carries the failing stage, pass and operation
    - ValidationError, UnsupportedOperationError, StructuralError,
      InfeasibleMappingError, TranspilerTimeoutError
"""
from __future__ import annotations


class TranspilerError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(self, message: str, *, stage: str | None = None, operation=None, pass_name: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.operation = operation
        self.pass_name = pass_name

    def __str__(self):
        parts = [self.message]
        if self.operation is not None: parts.append(f"operation={self.operation!r}")
        if self.stage is not None: parts.append(f"stage={self.stage}")
        if self.pass_name is not None: parts.append(f"pass={self.pass_name}")
        return parts[0] if len(parts) == 1 else f"{parts[0]} ({', '.join(parts[1:])})"


class ValidationError(TranspilerError, ValueError):
    """Malformed input: arity mismatch, unknown gate, index out of range."""


class UnsupportedOperationError(TranspilerError):
    """No decomposition path from an operation to the target basis."""


class StructuralError(TranspilerError):
    """A graph or layout mutation would violate its invariants."""


class InfeasibleMappingError(TranspilerError):
    """Routing is impossible on the coupling graph (e.g. it is disconnected)."""


class TranspilerTimeoutError(TranspilerError, TimeoutError):
    """The deadline passed between two passes. No partial output is produced."""
