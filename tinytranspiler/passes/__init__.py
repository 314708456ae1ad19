"""
Transpiler passes.

Modules:
    - analysis: CheckMap, DAGFingerprint, FixedPoint
    - layout: Initial placement (trivial, VF2, SABRE) and post-routing refinement
    - route: BasicSwap and SabreSwap routing
    - decompose: Basis translation through the equivalence library
    - direction: Gate direction correction for one-way couplers
    - optimize: Commutation-aware cancellation
    - fuse: 1Q run fusion and 2Q block resynthesis
    - measure: Measurement-aware init passes
    - schedule: ASAP / ALAP start times
"""
from .analysis import CheckMap, DAGFingerprint, FixedPoint
from .route import BasicSwap, SabreHeuristic, SabreSwap
from .layout import (TrivialLayout, SetLayout, VF2Layout, SabreLayout, ApplyLayout,
                     VF2PostLayout, ApplyPostLayout)
from .decompose import BasisTranslator, Unroll3qOrMore
from .direction import GateDirection
from .optimize import CommutativeCancellation
from .fuse import Optimize1qGates, TwoQubitResynthesis
from .measure import RemoveResetInZeroState, OptimizeSwapBeforeMeasure, RemoveDiagonalGatesBeforeMeasure
from .schedule import ASAPSchedule, ALAPSchedule

__all__ = [
    "CheckMap", "DAGFingerprint", "FixedPoint",
    "BasicSwap", "SabreHeuristic", "SabreSwap",
    "TrivialLayout", "SetLayout", "VF2Layout", "SabreLayout", "ApplyLayout", "VF2PostLayout", "ApplyPostLayout",
    "BasisTranslator", "Unroll3qOrMore", "GateDirection",
    "CommutativeCancellation", "Optimize1qGates", "TwoQubitResynthesis",
    "RemoveResetInZeroState", "OptimizeSwapBeforeMeasure", "RemoveDiagonalGatesBeforeMeasure",
    "ASAPSchedule", "ALAPSchedule",
]
