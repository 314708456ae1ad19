"""
Tests for compilation.

Tests:
    - Semantic preservation: simulate(original) == simulate(compiled)
    - Constraint satisfaction: output respects target
    - Layout bookkeeping, seeds and determinism
    - Argument validation and stamped pipeline errors
    - Timeout, callback, verbosity and scheduling
    - transpile_many()
"""
import logging
import multiprocessing
import time

import pytest

from tinytranspiler import (Circuit, Operation, Gate, Target, InstructionProperties, register_gate,
                            transpile, transpile_many, equivalent, validate)
from tinytranspiler.exceptions import (ValidationError, InfeasibleMappingError, UnsupportedOperationError,
                                       TranspilerTimeoutError)
from conftest import IBM_BASIS, noisy_line


def _scrambled() -> Circuit:
    return (Circuit(5).h(0).cx(0, 4).cx(1, 3).cx(2, 0).rz(3, 0.4).cx(4, 1).cz(0, 3)
            .rzz(1, 4, 0.3).t(2).cx(3, 0).ry(1, 0.8))


def _check(original: Circuit, out: Circuit, target: Target):
    assert validate(out, target) == []
    assert equivalent(original, out)


# =============================================================================
# End-to-end
# =============================================================================

@pytest.mark.parametrize("level", [0, 1, 2, 3])
def test_ghz_on_line(line_3, ghz_circuit, level):
    out = transpile(ghz_circuit, line_3, optimization_level=level, seed=1)
    _check(ghz_circuit, out, line_3)


def test_level_0_keeps_trivial_layout(line_3, ghz_circuit):
    out = transpile(ghz_circuit, line_3, optimization_level=0)
    assert out.layout.initial_physical() == [0, 1, 2]
    assert out.layout.final_physical() == [0, 1, 2]


def test_level_0_routes_with_swaps(line_3):
    c = Circuit(3).h(0).cx(0, 2)
    out = transpile(c, line_3, optimization_level=0)
    _check(c, out, line_3)
    assert out.count_ops()["cx"] == 4


@pytest.mark.parametrize("level", [0, 1, 2, 3])
def test_scrambled_circuit_on_line(ibm_line_5, level):
    c = _scrambled()
    out = transpile(c, ibm_line_5, optimization_level=level, seed=11)
    _check(c, out, ibm_line_5)


@pytest.mark.parametrize("fixture", ["ibm_grid_4", "rigetti_line_5", "ionq_4", "ecr_line_3", "directed_line_3"])
def test_each_target_family(fixture, request):
    target = request.getfixturevalue(fixture)
    c = Circuit(3).h(0).cx(0, 2).s(1).cz(1, 2).rx(0, 0.3).swap(0, 1).ccx(0, 1, 2)
    out = transpile(c, target, optimization_level=2, seed=5)
    _check(c, out, target)


def test_ecr_target_uses_one_ecr(ecr_line_3):
    c = Circuit(2).cx(0, 1)
    out = transpile(c, ecr_line_3, optimization_level=1, seed=0)
    _check(c, out, ecr_line_3)
    assert out.count_ops()["ecr"] == 1
    assert len(out) <= 9


def test_optimization_removes_redundancy(line_3):
    out = transpile(Circuit(2).h(0).h(0).cx(0, 1).cx(0, 1), line_3, optimization_level=1, seed=0)
    assert len(out) == 0


def test_level_3_resynthesizes_2q_blocks(line_3):
    c = Circuit(2).cx(0, 1).cx(1, 0).cx(0, 1).h(0).cx(0, 1).cx(1, 0)
    out = transpile(c, line_3, optimization_level=3, seed=0)
    _check(c, out, line_3)
    assert out.num_2q() <= 3


def test_parameterized_circuit(line_3):
    from tinytranspiler import Parameter
    theta = Parameter("theta")
    c = Circuit(2).h(0).rx(1, theta).cx(0, 1).rz(1, 2 * theta)
    out = transpile(c, line_3, optimization_level=1, seed=0)
    assert out.is_parameterized
    _check(c, out, line_3)


# =============================================================================
# Layout bookkeeping
# =============================================================================

def test_initial_layout_is_respected(line_3):
    c = Circuit(3).cx(0, 1).cx(1, 2)
    out = transpile(c, line_3, optimization_level=1, initial_layout=[2, 1, 0])
    assert out.layout.initial_physical() == [2, 1, 0]
    _check(c, out, line_3)


def test_partial_initial_layout(line_3):
    c = Circuit(2).h(0).cx(0, 1)
    out = transpile(c, line_3, optimization_level=1, initial_layout={0: 2, 1: 1})
    assert out.layout.initial_physical() == [2, 1]
    assert out.layout.n_logical == 2


def test_layouts_are_frozen(line_3, ghz_circuit):
    out = transpile(ghz_circuit, line_3)
    assert out.layout.initial.frozen and out.layout.final.frozen


def test_post_layout_prefers_low_error_pair():
    target = noisy_line(3, {(0, 1): 0.2, (1, 2): 0.01})
    out = transpile(Circuit(2).h(0).cx(0, 1), target, optimization_level=1, seed=0)
    assert set(out.layout.initial_physical()) == {1, 2}
    assert validate(out, target) == []


@pytest.mark.parametrize("level", [0, 1, 2, 3])
def test_one_way_calibrated_couplers(level):
    """cx calibrated only as (0,1) and (1,2): reversed cx ops come out flipped."""
    cal = InstructionProperties(3.0, 0.01)
    target = Target(n_qubits=3, edges={(0, 1), (1, 2)}, basis_gates=IBM_BASIS,
                    properties={"cx": {(0, 1): cal, (1, 2): cal}})
    c = Circuit(3).h(1).cx(1, 0).cx(2, 1)
    out = transpile(c, target, optimization_level=level, seed=0)
    _check(c, out, target)
    assert {op.qubits for op in out if op.name == "cx"} <= {(0, 1), (1, 2)}


@pytest.mark.parametrize("level", [0, 1, 2, 3])
def test_uncalibrated_coupler_never_used(level):
    """Only (0,1) carries cx calibrations, so the circuit must stay on that pair."""
    cal = InstructionProperties(3.0, 0.02)
    target = Target(n_qubits=3, edges={(0, 1), (1, 2)}, basis_gates=IBM_BASIS,
                    properties={"cx": {(0, 1): cal, (1, 0): cal}})
    c = Circuit(2).h(0).cx(0, 1).cx(1, 0)
    out = transpile(c, target, optimization_level=level, seed=0)
    _check(c, out, target)
    assert all(set(op.qubits) <= {0, 1} for op in out if len(op.qubits) == 2)


def test_same_seed_same_output(ibm_line_5):
    c = _scrambled()
    a = transpile(c, ibm_line_5, optimization_level=2, seed=123)
    b = transpile(c, ibm_line_5, optimization_level=2, seed=123)
    assert a.ops == b.ops
    assert a.layout == b.layout


def test_without_seed(ibm_line_5):
    c = _scrambled()
    _check(c, transpile(c, ibm_line_5, optimization_level=2), ibm_line_5)


# =============================================================================
# Inputs with measurements and conditions
# =============================================================================

def test_measured_circuit(line_3):
    c = Circuit(3).h(0).cx(0, 2).measure_all()
    out = transpile(c, line_3, optimization_level=1, seed=0)
    assert validate(out, line_3) == []
    measures = [op for op in out if op.name == "measure"]
    assert sorted(op.clbits[0] for op in measures) == [0, 1, 2]


def test_conditional_ops_keep_condition(line_3):
    c = Circuit(2, 1).h(0).measure(0, 0)
    with c.c_if(0, 1):
        c.x(1)
    out = transpile(c, line_3, optimization_level=2, seed=0)
    conditioned = [op for op in out if op.condition is not None]
    assert conditioned and all(op.condition == (0, 1) for op in conditioned)
    assert validate(out, line_3) == []


def test_level_3_drops_swap_before_measure(line_3):
    c = Circuit(2).h(0).swap(0, 1).measure(0, 0).measure(1, 1)
    out = transpile(c, line_3, optimization_level=3, seed=0)
    assert "cx" not in out.count_ops()
    assert out.count_ops()["measure"] == 2


def test_op_list_input(line_3):
    ops = [Operation(Gate.H, (0,)), Operation(Gate.CX, (0, 1))]
    out = transpile(ops, line_3, optimization_level=1, seed=0)
    assert isinstance(out, Circuit)
    _check(Circuit(2).h(0).cx(0, 1), out, line_3)


# =============================================================================
# Errors
# =============================================================================

def test_circuit_wider_than_target(line_3):
    with pytest.raises(ValidationError, match="4 qubits but target has 3"):
        transpile(Circuit(4).h(3), line_3)


@pytest.mark.parametrize("kwargs", [
    {"optimization_level": 7},
    {"approximation_degree": 1.5},
    {"timeout": -1},
    {"routing_method": "magic"},
    {"layout_method": "dense"},
    {"scheduling_method": "late"},
])
def test_bad_arguments(line_3, ghz_circuit, kwargs):
    with pytest.raises(ValidationError):
        transpile(ghz_circuit, line_3, **kwargs)


def test_bad_target_and_input(line_3, ghz_circuit):
    with pytest.raises(ValidationError, match="Target"):
        transpile(ghz_circuit, "line_3")
    with pytest.raises(ValidationError, match="Circuit"):
        transpile("h 0", line_3)


def test_disconnected_target_fails_in_routing(disconnected_4):
    with pytest.raises(InfeasibleMappingError) as info:
        transpile(Circuit(4).cx(0, 2), disconnected_4, optimization_level=0)
    assert info.value.stage == "routing"


def test_opaque_gate_fails_in_translation(line_3):
    register_gate("compile_test_opaque", 1)
    with pytest.raises(UnsupportedOperationError) as info:
        transpile(Circuit(1).append("compile_test_opaque", (0,)), line_3, optimization_level=1)
    assert info.value.stage == "translation"


def test_timeout(ibm_line_5):
    with pytest.raises(TranspilerTimeoutError):
        transpile(_scrambled(), ibm_line_5, optimization_level=1, seed=0, timeout=0.01,
                  callback=lambda **kwargs: time.sleep(0.02))


# =============================================================================
# Callback, verbosity, scheduling
# =============================================================================

def test_callback_sees_every_pass(line_3, ghz_circuit):
    calls = []
    transpile(ghz_circuit, line_3, optimization_level=1, seed=0, callback=lambda **kw: calls.append(kw))
    assert [c["count"] for c in calls] == list(range(len(calls)))
    assert calls[0]["pass_"].name == "Unroll3qOrMore"


def test_verbosity_levels(line_3, ghz_circuit, capsys):
    transpile(ghz_circuit, line_3, seed=7, verbosity=1)
    text = capsys.readouterr().out
    assert "TinyTranspiler Compilation Report" in text
    assert "SWAPs:" in text and "Seed:   7" in text
    assert "PASSES" not in text

    transpile(ghz_circuit, line_3, seed=7, verbosity=2)
    text = capsys.readouterr().out
    assert "PASSES" in text and "MAPPING" in text and "OPS" not in text

    transpile(ghz_circuit, line_3, seed=7, verbosity=3)
    assert "OPS" in capsys.readouterr().out


def test_verbosity_keeps_user_callback(line_3, ghz_circuit, capsys):
    calls = []
    transpile(ghz_circuit, line_3, seed=0, verbosity=2, callback=lambda **kw: calls.append(kw))
    assert calls
    assert "PASSES" in capsys.readouterr().out


def test_silent_by_default(line_3, ghz_circuit, capsys):
    transpile(ghz_circuit, line_3, seed=0)
    assert capsys.readouterr().out == ""


def test_scheduling_start_times():
    props = {"sx": {(0,): InstructionProperties(1.0), (1,): InstructionProperties(1.0)},
             "cx": {(0, 1): InstructionProperties(3.0), (1, 0): InstructionProperties(3.0)}}
    target = Target(n_qubits=2, edges={(0, 1)}, basis_gates=IBM_BASIS, properties=props, name="timed")
    out = transpile(Circuit(2).sx(0).cx(0, 1), target, optimization_level=0, scheduling_method="asap")
    assert [op.name for op in out] == ["sx", "cx"]
    assert out.op_start_times == [0.0, 1.0]


def test_no_start_times_without_scheduling(line_3, ghz_circuit):
    assert transpile(ghz_circuit, line_3, seed=0).op_start_times is None


# =============================================================================
# transpile_many
# =============================================================================

@pytest.mark.parametrize("workers", [1, 2])
def test_transpile_many(ibm_line_5, workers):
    circuits = [_scrambled(), Circuit(3).h(0).cx(0, 2), Circuit(5).cx(4, 0)]
    results = transpile_many(circuits, ibm_line_5, max_workers=workers, optimization_level=2, seed=3)
    assert len(results) == 3
    for c, out in zip(circuits, results):
        assert out.ops == transpile(c, ibm_line_5, optimization_level=2, seed=3).ops
        _check(c, out, ibm_line_5)


def test_transpile_many_spawned_workers_know_custom_gates(ibm_line_5):
    """Workers started with spawn get the caller's register_gate() calls."""
    register_gate("compile_test_flip", 1, matrix=Gate.X.to_matrix)
    register_gate("compile_test_turn", 1, 1, matrix=Gate.RY.to_matrix)
    circuits = [Circuit(2).append("compile_test_flip", (0,)).cx(0, 1),
                Circuit(2).h(1).append("compile_test_turn", (1,), (0.7,)).cx(1, 0)]
    results = transpile_many(circuits, ibm_line_5, max_workers=2, mp_context=multiprocessing.get_context("spawn"),
                             optimization_level=1, seed=0)
    for c, out in zip(circuits, results):
        _check(c, out, ibm_line_5)


def test_transpile_many_unpicklable_custom_gate_runs_locally(ibm_line_5, caplog):
    register_gate("compile_test_lambda_flip", 1, matrix=lambda p: Gate.X.to_matrix())
    circuits = [Circuit(1).append("compile_test_lambda_flip", (0,)), Circuit(2).h(0).cx(0, 1)]
    with caplog.at_level(logging.WARNING, logger="tinytranspiler.compile"):
        results = transpile_many(circuits, ibm_line_5, max_workers=2,
                                 mp_context=multiprocessing.get_context("spawn"), optimization_level=1, seed=0)
    assert "transpiling in this process" in caplog.text
    for c, out in zip(circuits, results):
        _check(c, out, ibm_line_5)
