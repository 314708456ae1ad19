"""
TinyTranspiler - A tiny quantum circuit transpiler
"""

from .gates import Gate, GATES, register_gate
from .ir import Circuit, Operation, Parameter, ParameterExpression
from .dag import DAGCircuit, commutes, semantic_eq
from .target import Target, InstructionProperties, validate
from .layout import Layout, TranspileLayout
from .equivalence import EquivalenceLibrary, STANDARD_EQUIVALENCES
from .passmanager import (PropertySet, BasePass, AnalysisPass, TransformationPass, PassManager,
                          StagedPassManager, ConditionalController, DoWhileController)
from .preset import LevelConfig, PRESET_LEVELS, generate_pass_manager
from .compile import transpile, transpile_many
from .simulator import to_unitary, equivalent
from .exceptions import (TranspilerError, ValidationError, UnsupportedOperationError, StructuralError,
                         InfeasibleMappingError, TranspilerTimeoutError)

__all__ = [
    # Core IR
    "Gate",
    "GATES",
    "register_gate",
    "Circuit",
    "Operation",
    "Parameter",
    "ParameterExpression",
    "DAGCircuit",
    "commutes",
    "semantic_eq",
    # Hardware
    "Target",
    "InstructionProperties",
    "validate",
    "Layout",
    "TranspileLayout",
    # Rules
    "EquivalenceLibrary",
    "STANDARD_EQUIVALENCES",
    # Pass infrastructure
    "PropertySet",
    "BasePass",
    "AnalysisPass",
    "TransformationPass",
    "PassManager",
    "StagedPassManager",
    "ConditionalController",
    "DoWhileController",
    # Compilation
    "LevelConfig",
    "PRESET_LEVELS",
    "generate_pass_manager",
    "transpile",
    "transpile_many",
    # Verification
    "to_unitary",
    "equivalent",
    # Errors
    "TranspilerError",
    "ValidationError",
    "UnsupportedOperationError",
    "StructuralError",
    "InfeasibleMappingError",
    "TranspilerTimeoutError",
]
