"""
Preset pipelines per optimization level.

Contains:
    - LevelConfig: Frozen tuning knobs of one effort level
    - PRESET_LEVELS: Level 0..3 configurations
    - generate_pass_manager(): Build the six-stage StagedPassManager for a config

Level 0: trivial layout, BasicSwap, no optimization loop.
Level 1: trivial layout if it needs no SWAP, else VF2, else SABRE; light optimization.
Level 2: VF2 then SABRE with more trials; 2Q resynthesis in the loop.
Level 3: as level 2 with more search, measurement-aware init passes.
"""
from __future__ import annotations

from dataclasses import dataclass

from .equivalence import EquivalenceLibrary
from .exceptions import ValidationError
from .passmanager import AnalysisPass, ConditionalController, DoWhileController, StagedPassManager
from .passes import (ALAPSchedule, ApplyLayout, ApplyPostLayout, ASAPSchedule, BasicSwap, BasisTranslator,
                     CheckMap, CommutativeCancellation, DAGFingerprint, FixedPoint, GateDirection,
                     Optimize1qGates, OptimizeSwapBeforeMeasure, RemoveDiagonalGatesBeforeMeasure,
                     RemoveResetInZeroState, SabreHeuristic, SabreLayout, SabreSwap, SetLayout, TrivialLayout,
                     TwoQubitResynthesis, Unroll3qOrMore, VF2Layout, VF2PostLayout)
from .target import Target


@dataclass(frozen=True)
class LevelConfig:
    level: int
    try_trivial: bool = False
    use_vf2: bool = False
    vf2_call_limit: int = 0
    layout_trials: int = 1
    bidirectional_iterations: int = 1
    lookahead_size: int = 20
    lookahead_weight: float = 0.5
    decay_delta: float = 0.001
    swap_budget_factor: int = 10
    post_layout: bool = False
    routing: str = "sabre"
    optimize: bool = False
    resynthesis: bool = False
    synthesis_trials: int = 1
    init_cancellation: bool = False
    measure_opts: bool = False
    max_opt_iterations: int = 0

    @property
    def heuristic(self) -> SabreHeuristic:
        return SabreHeuristic(lookahead_size=self.lookahead_size, lookahead_weight=self.lookahead_weight,
                              decay_delta=self.decay_delta, swap_budget_factor=self.swap_budget_factor)


PRESET_LEVELS: dict[int, LevelConfig] = {
    0: LevelConfig(0, routing="basic"),
    1: LevelConfig(1, try_trivial=True, use_vf2=True, vf2_call_limit=50_000, layout_trials=5,
                   bidirectional_iterations=1, lookahead_size=20, post_layout=True,
                   optimize=True, max_opt_iterations=20),
    2: LevelConfig(2, use_vf2=True, vf2_call_limit=5_000_000, layout_trials=10, bidirectional_iterations=2,
                   lookahead_size=30, post_layout=True, optimize=True, resynthesis=True,
                   init_cancellation=True, max_opt_iterations=50),
    3: LevelConfig(3, use_vf2=True, vf2_call_limit=30_000_000, layout_trials=20, bidirectional_iterations=4,
                   lookahead_size=40, post_layout=True, optimize=True, resynthesis=True, synthesis_trials=2,
                   init_cancellation=True, measure_opts=True, max_opt_iterations=100),
}

LAYOUT_METHODS = ("default", "trivial", "vf2", "sabre")
ROUTING_METHODS = ("default", "basic", "sabre", "none")
TRANSLATION_METHODS = ("translator",)
OPTIMIZATION_METHODS = ("default", "none")
SCHEDULING_METHODS = (None, "asap", "alap")


def _check(kind: str, value, allowed):
    if value not in allowed:
        raise ValidationError(f"Unknown {kind} method {value!r}; expected one of {list(allowed)}")


def _not_mapped(ps) -> bool: return not ps["is_swap_mapped"]
def _no_vf2_solution(ps) -> bool: return ps["vf2_layout_stop_reason"] != "solution found"


class _ClearLayout(AnalysisPass):
    """Forget the layout chosen so far."""

    def run(self, dag):
        self.property_set["layout"] = None


def _layout_stage(config: LevelConfig, target: Target, method: str, seed, initial_layout) -> list:
    if initial_layout is not None:
        return [SetLayout(initial_layout, target), ApplyLayout(target)]
    sabre = SabreLayout(target, seed=seed, layout_trials=config.layout_trials,
                        bidirectional_iterations=config.bidirectional_iterations, heuristic=config.heuristic)
    vf2 = VF2Layout(target, call_limit=config.vf2_call_limit or None)
    if method == "trivial" or (method == "default" and not config.use_vf2):
        tasks = [TrivialLayout(target)]
    elif method == "vf2":
        tasks = [vf2, ConditionalController([TrivialLayout(target)], lambda ps: ps["layout"] is None)]
    elif method == "sabre":
        tasks = [sabre]
    elif config.try_trivial:
        # VF2 stores its layout only on success, so the trivial one is cleared first
        tasks = [TrivialLayout(target), CheckMap(target),
                 ConditionalController([_ClearLayout(), vf2], _not_mapped),
                 ConditionalController([sabre], lambda ps: _not_mapped(ps) and _no_vf2_solution(ps))]
    else:
        tasks = [vf2, ConditionalController([sabre], _no_vf2_solution)]
    return tasks + [ApplyLayout(target)]


def _routing_stage(config: LevelConfig, target: Target, method: str, seed, user_layout: bool) -> list:
    if method == "none":
        return []
    kind = config.routing if method == "default" else method
    router = BasicSwap(target) if kind == "basic" else SabreSwap(target, seed=seed, heuristic=config.heuristic)
    tasks = [CheckMap(target), ConditionalController([router], _not_mapped)]
    if config.post_layout and target.has_error_data and not user_layout:
        tasks += [VF2PostLayout(target, call_limit=config.vf2_call_limit or None), ApplyPostLayout()]
    return tasks


def _translation_stage(target: Target, library) -> list:
    translator = BasisTranslator(target.basis_gates, library, target)
    if not (target.directed or target.has_one_way_couplers):
        return [translator]
    return [translator, GateDirection(target, library), BasisTranslator(target.basis_gates, library, target)]


def _optimization_stage(config: LevelConfig, target: Target, method: str, library, approximation_degree) -> list:
    if method == "none" or not config.optimize:
        return []
    loop = [CommutativeCancellation(target.basis_gates, target), Optimize1qGates(target=target)]
    if config.resynthesis:
        loop.append(TwoQubitResynthesis(target, library, approximation_degree, config.synthesis_trials))
    loop += [DAGFingerprint(), FixedPoint("dag_fingerprint")]
    return [DoWhileController(loop, lambda ps: not ps["dag_fingerprint_fixed_point"],
                              max_iteration=config.max_opt_iterations)]


def _scheduling_stage(target: Target, method) -> list:
    if method is None:
        return []
    return [ASAPSchedule(target) if method == "asap" else ALAPSchedule(target)]


def generate_pass_manager(config: LevelConfig, target: Target, *, seed: int | None = None,
                          approximation_degree: float = 1.0, initial_layout=None,
                          layout_method: str | None = None, routing_method: str | None = None,
                          translation_method: str | None = None, optimization_method: str | None = None,
                          scheduling_method: str | None = None,
                          equivalence_library: EquivalenceLibrary | None = None) -> StagedPassManager:
    """Build the staged pipeline for one effort level. ``config`` is only read."""
    layout_method = layout_method or "default"
    routing_method = routing_method or "default"
    translation_method = translation_method or "translator"
    optimization_method = optimization_method or "default"
    _check("layout", layout_method, LAYOUT_METHODS)
    _check("routing", routing_method, ROUTING_METHODS)
    _check("translation", translation_method, TRANSLATION_METHODS)
    _check("optimization", optimization_method, OPTIMIZATION_METHODS)
    _check("scheduling", scheduling_method, SCHEDULING_METHODS)

    init = [Unroll3qOrMore(equivalence_library, target.basis_gates)]
    if config.level >= 1:
        init.append(RemoveResetInZeroState())
    if config.init_cancellation:
        init.append(CommutativeCancellation())
    if config.measure_opts:
        init += [OptimizeSwapBeforeMeasure(), RemoveDiagonalGatesBeforeMeasure()]

    return StagedPassManager({
        "init": init,
        "layout": _layout_stage(config, target, layout_method, seed, initial_layout),
        "routing": _routing_stage(config, target, routing_method, seed, initial_layout is not None),
        "translation": _translation_stage(target, equivalence_library),
        "optimization": _optimization_stage(config, target, optimization_method, equivalence_library,
                                            approximation_degree),
        "scheduling": _scheduling_stage(target, scheduling_method),
    })
