"""
Tests for the measurement-aware init passes.

Tests:
    - RemoveResetInZeroState only drops resets on fresh qubits
    - OptimizeSwapBeforeMeasure relabels final measurements
    - RemoveDiagonalGatesBeforeMeasure, including 2Q diagonal gates
"""
from tinytranspiler.ir import Circuit
from tinytranspiler.passes import (RemoveResetInZeroState, OptimizeSwapBeforeMeasure,
                                   RemoveDiagonalGatesBeforeMeasure)


def _triples(circuit):
    return [(op.name, op.qubits, op.clbits) for op in circuit]


# =============================================================================
# RemoveResetInZeroState
# =============================================================================

def test_reset_on_fresh_qubit_removed():
    c = Circuit(2).reset(0).h(0).reset(0).reset(1)
    out = RemoveResetInZeroState()(c)
    assert [(op.name, op.qubits) for op in out] == [("h", (0,)), ("reset", (0,))]


def test_reset_after_gate_kept():
    c = Circuit(1).x(0).reset(0)
    assert RemoveResetInZeroState()(c).ops == c.ops


# =============================================================================
# OptimizeSwapBeforeMeasure
# =============================================================================

def test_swap_before_measures():
    c = Circuit(2).h(0).swap(0, 1).measure(0, 0).measure(1, 1)
    out = OptimizeSwapBeforeMeasure()(c)
    assert out.ops[0].name == "h"
    assert sorted(_triples(out)[1:]) == [("measure", (0,), (1,)), ("measure", (1,), (0,))]
    assert "swap" not in out.count_ops()


def test_swap_with_one_idle_wire():
    out = OptimizeSwapBeforeMeasure()(Circuit(2).swap(0, 1).measure(0, 0))
    assert _triples(out) == [("measure", (1,), (0,))]


def test_swap_followed_by_gate_kept():
    c = Circuit(2).swap(0, 1).h(0).measure(1)
    assert OptimizeSwapBeforeMeasure()(c).ops == c.ops


def test_trailing_swap_without_measure_kept():
    c = Circuit(2).x(0).swap(0, 1)
    assert OptimizeSwapBeforeMeasure()(c).ops == c.ops


def test_conditioned_swap_kept():
    c = Circuit(2, 2).measure(0, 0)
    with c.c_if(0, 1):
        c.swap(0, 1)
    c.measure(1, 1)
    assert OptimizeSwapBeforeMeasure()(c).ops == c.ops


# =============================================================================
# RemoveDiagonalGatesBeforeMeasure
# =============================================================================

def test_diagonal_chain_removed():
    out = RemoveDiagonalGatesBeforeMeasure()(Circuit(1).h(0).rz(0, 0.3).t(0).measure(0))
    assert [op.name for op in out] == ["h", "measure"]


def test_2q_diagonal_before_measures_removed():
    c = Circuit(2).h(0).h(1).cz(0, 1).measure(0).measure(1)
    out = RemoveDiagonalGatesBeforeMeasure()(c)
    assert "cz" not in out.count_ops()
    assert out.count_ops()["measure"] == 2


def test_2q_diagonal_with_other_successor_kept():
    c = Circuit(2).h(0).cz(0, 1).h(1).measure(0).measure(1)
    assert RemoveDiagonalGatesBeforeMeasure()(c).ops == c.ops


def test_non_diagonal_kept():
    c = Circuit(1).rz(0, 0.2).h(0).measure(0)
    assert RemoveDiagonalGatesBeforeMeasure()(c).ops == c.ops


def test_lossy_passes_are_flagged():
    assert OptimizeSwapBeforeMeasure.preserves_unitary is False
    assert RemoveDiagonalGatesBeforeMeasure.preserves_unitary is False
