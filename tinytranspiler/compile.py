"""
Main compilation entry point.

Six-stage pipeline (see preset.py):
    init -> layout -> routing -> translation -> optimization -> scheduling

transpile() compiles one circuit. transpile_many() compiles independent
circuits in worker processes; the Target is read-only and pickled to them.
Workers that do not fork from the caller get its custom gate registrations
replayed before they take work.
"""
from __future__ import annotations

import logging
import multiprocessing
import pickle
import random
import time
from concurrent.futures import ProcessPoolExecutor
from functools import partial

from .dag import DAGCircuit, ops_to_dag
from .equivalence import EquivalenceLibrary
from .exceptions import ValidationError
from .gates import GATES, STANDARD_GATES, register_gate
from .ir import Circuit, Operation
from .layout import Layout, TranspileLayout
from .passmanager import PropertySet
from .preset import PRESET_LEVELS, generate_pass_manager
from .report import ReportCollector, build_report
from .target import Target

logger = logging.getLogger(__name__)


def _as_dag(circuit) -> tuple[Circuit, DAGCircuit]:
    if isinstance(circuit, Circuit):
        return circuit, DAGCircuit.from_circuit(circuit)
    if isinstance(circuit, (list, tuple)) and all(isinstance(op, Operation) for op in circuit):
        dag = ops_to_dag(list(circuit))
        return dag.to_circuit(), dag
    raise ValidationError(f"Expected a Circuit or a list of Operations, got {type(circuit).__name__}")


def _check_args(target, optimization_level, approximation_degree, timeout):
    if not isinstance(target, Target):
        raise ValidationError(f"Expected a Target, got {type(target).__name__}")
    if optimization_level not in PRESET_LEVELS:
        raise ValidationError(f"optimization_level must be one of {sorted(PRESET_LEVELS)}, got {optimization_level!r}")
    if not 0.0 <= approximation_degree <= 1.0:
        raise ValidationError(f"approximation_degree must be in [0, 1], got {approximation_degree}")
    if timeout is not None and timeout < 0:
        raise ValidationError(f"timeout must be non-negative, got {timeout}")


def transpile(circuit: Circuit | list[Operation], target: Target, optimization_level: int = 1,
              seed: int | None = None, approximation_degree: float = 1.0, initial_layout=None,
              layout_method: str | None = None, routing_method: str | None = None,
              translation_method: str | None = None, optimization_method: str | None = None,
              scheduling_method: str | None = None, timeout: float | None = None, callback=None,
              verbosity: int = 0, equivalence_library: EquivalenceLibrary | None = None) -> Circuit:
    """
    Transpile circuit for target hardware.

    Args:
        circuit: Input circuit (or flat op list) with logical qubit indices
        target: Hardware target (connectivity + basis gates + calibrations)
        optimization_level: 0=no optimization ... 3=most search and rewriting
        seed: Fixes every random choice; None draws one from the OS entropy source
        approximation_degree: Assumed fidelity of one 2Q basis interaction; 1.0 is exact
        initial_layout: List or dict logical -> physical; skips layout search
        layout_method / routing_method / translation_method / optimization_method /
            scheduling_method: Per-stage overrides (see preset.py)
        timeout: Seconds; checked between passes, raises TranspilerTimeoutError
        callback: Called after every pass with pass_, dag, time, property_set, count
        verbosity: 0=silent, 1=summary, 2=per pass, 3=per pass with ops
        equivalence_library: Rules to use instead of the standard library

    Returns a Circuit over physical qubits with ``layout`` set to a TranspileLayout.
    """
    _check_args(target, optimization_level, approximation_degree, timeout)
    source, dag = _as_dag(circuit)
    if dag.n_qubits > target.n_qubits:
        raise ValidationError(f"Circuit has {dag.n_qubits} qubits but target has {target.n_qubits}")
    if seed is None:
        seed = random.SystemRandom().randrange(2 ** 32)

    pm = generate_pass_manager(
        PRESET_LEVELS[optimization_level], target, seed=seed, approximation_degree=approximation_degree,
        initial_layout=initial_layout, layout_method=layout_method, routing_method=routing_method,
        translation_method=translation_method, optimization_method=optimization_method,
        scheduling_method=scheduling_method, equivalence_library=equivalence_library)

    ps = PropertySet()
    ps["seed"] = seed
    collector = ReportCollector(dag, verbosity, callback) if verbosity > 0 else None
    deadline = time.monotonic() + timeout if timeout is not None else None
    start = time.perf_counter()
    dag = pm.run(dag, property_set=ps, callback=collector or callback, deadline=deadline)

    result = dag.to_circuit()
    n = target.n_qubits
    initial = dag.metadata.get("initial_layout")
    initial = initial.copy() if initial is not None else Layout.trivial(n)
    final = dag.metadata.get("final_layout")
    final = final.copy() if final is not None else initial.copy()
    result.layout = TranspileLayout(initial.freeze(), final.freeze(), source.n_qubits)
    starts = ps["node_start_time"]
    if starts is not None:
        result.op_start_times = [starts[nid] for nid in dag.topological_order()]

    logger.info("Transpiled %d-qubit circuit at level %d in %.2f ms: %d -> %d ops, %d two-qubit",
                source.n_qubits, optimization_level, (time.perf_counter() - start) * 1000,
                len(source), len(result), result.num_2q())
    if collector is not None:
        report = build_report(source, result, collector.passes, dag.metadata.get("routing_swaps", 0),
                              target, seed, ps["unitary_preserved"])
        print(report.to_text(verbosity))
    return result


def _custom_gate_specs(circuits, target: Target) -> list[tuple]:
    """register_gate() arguments for every non-standard gate the job needs."""
    names = set(target.basis_gates)
    for c in circuits:
        names.update(op.name for op in (c.ops if isinstance(c, Circuit) else c))
    return [(g.name, g.n_qubits, g.n_params, g.matrix_fn)
            for g in (GATES[n] for n in sorted((names - STANDARD_GATES) & GATES.keys()))]


def _register_gates(specs):
    for spec in specs:
        register_gate(*spec)


def transpile_many(circuits, target: Target, max_workers: int | None = None, mp_context=None,
                   **kwargs) -> list[Circuit]:
    """Transpile independent circuits, in worker processes when more than one is given.

    Keyword arguments are passed to transpile(); they (and the target) must be
    picklable. Results keep the input order.

    Gates added with register_gate() are registered again in each worker unless
    the workers are forked. That needs their matrix functions to pickle (a
    module-level function or a bound method, not a lambda); when one does not,
    the circuits are transpiled in this process instead.
    """
    circuits = list(circuits)
    job = partial(transpile, target=target, **kwargs)
    if max_workers == 1 or len(circuits) <= 1:
        return [job(c) for c in circuits]
    ctx = mp_context if mp_context is not None else multiprocessing.get_context()
    specs = [] if ctx.get_start_method() == "fork" else _custom_gate_specs(circuits, target)
    try:
        pickle.dumps(specs)
    except (pickle.PicklingError, AttributeError, TypeError) as e:
        logger.warning("Custom gates cannot be sent to %s workers (%s); transpiling in this process",
                       ctx.get_start_method(), e)
        return [job(c) for c in circuits]
    with ProcessPoolExecutor(max_workers=max_workers, mp_context=ctx,
                             initializer=_register_gates, initargs=(specs,)) as pool:
        return list(pool.map(job, circuits))
