"""
Tests for layouts and the layout passes.

Tests:
    - Layout bijection, completion, swaps and freezing
    - TranspileLayout permutations
    - TrivialLayout / SetLayout / ApplyLayout
    - VF2Layout and SabreLayout placement
    - VF2PostLayout / ApplyPostLayout refinement
"""
import pytest

from tinytranspiler.dag import DAGCircuit
from tinytranspiler.exceptions import StructuralError, ValidationError
from tinytranspiler.ir import Circuit
from tinytranspiler.layout import Layout, TranspileLayout
from tinytranspiler.passes import (TrivialLayout, SetLayout, VF2Layout, SabreLayout, ApplyLayout,
                                   VF2PostLayout, ApplyPostLayout)
from tinytranspiler.passmanager import PassManager, PropertySet
from conftest import noisy_line


def _dag(circuit):
    return DAGCircuit.from_circuit(circuit)


def _chain(n):
    c = Circuit(n)
    for i in range(n - 1): c.cx(i, i + 1)
    return c


# =============================================================================
# Layout
# =============================================================================

def test_layout_bijection():
    layout = Layout([2, 0, 1])
    assert layout.logical_to_phys(0) == 2
    assert layout.phys_to_logical(2) == 0
    assert layout.get_physical_qubits((1, 2)) == (0, 1)
    assert layout.to_dict(2) == {0: 2, 1: 0}


def test_layout_rejects_non_permutation():
    with pytest.raises(ValidationError):
        Layout([0, 0, 1])
    with pytest.raises(ValidationError):
        Layout([1, 2])


def test_from_partial_fills_free_qubits():
    """Ancillas take the unused physical qubits in increasing order."""
    assert Layout.from_partial([2, 0], 4).to_list() == [2, 0, 1, 3]
    assert Layout.from_partial({1: 3, 0: 0}, 4).to_list() == [0, 3, 1, 2]


def test_from_partial_errors():
    with pytest.raises(ValidationError, match="two logical"):
        Layout.from_partial([1, 1], 3)
    with pytest.raises(ValidationError, match="outside"):
        Layout.from_partial([5], 3)
    with pytest.raises(ValidationError, match="skips"):
        Layout.from_partial({1: 0}, 3)


def test_swap_physical():
    layout = Layout.trivial(3)
    layout.swap_physical(0, 2)
    assert layout.to_list() == [2, 1, 0]
    assert layout.phys_to_logical(0) == 2
    layout.swap_physical(1, 1)
    assert layout.to_list() == [2, 1, 0]


def test_frozen_layout_cannot_swap():
    layout = Layout.trivial(2).freeze()
    assert layout.frozen
    with pytest.raises(StructuralError):
        layout.swap_physical(0, 1)
    assert not layout.copy().frozen


def test_compose_physical():
    assert Layout([1, 0, 2]).compose_physical([2, 0, 1]).to_list() == [0, 2, 1]


def test_transpile_layout_permutation():
    """perm[p] is where the state that started on p ends up."""
    tl = TranspileLayout(Layout([1, 0, 2]), Layout([2, 0, 1]), n_logical=2)
    assert tl.initial_physical() == [1, 0]
    assert tl.final_physical() == [2, 0]
    assert tl.routing_permutation() == [0, 2, 1]


def test_transpile_layout_identity():
    tl = TranspileLayout(Layout.trivial(3), Layout.trivial(3), n_logical=3)
    assert tl.routing_permutation() == [0, 1, 2]


# =============================================================================
# Trivial / Set / Apply
# =============================================================================

def test_trivial_layout(line_3):
    ps = PropertySet()
    TrivialLayout(line_3)(_dag(Circuit(2).cx(0, 1)), ps)
    assert ps["layout"] == Layout.trivial(3)


def test_layout_pass_rejects_wide_circuit(line_3):
    with pytest.raises(ValidationError):
        TrivialLayout(line_3)(_dag(Circuit(4).x(3)))


def test_set_layout_list_and_dict(line_3):
    ps = PropertySet()
    SetLayout([2, 0], line_3)(_dag(Circuit(2).cx(0, 1)), ps)
    assert ps["layout"].to_list() == [2, 0, 1]
    SetLayout({0: 1, 1: 2}, line_3)(_dag(Circuit(2).cx(0, 1)), ps)
    assert ps["layout"].to_list() == [1, 2, 0]


def test_set_layout_too_short(line_3):
    with pytest.raises(ValidationError, match="covers 1"):
        SetLayout([1], line_3)(_dag(Circuit(2).cx(0, 1)))


def test_apply_layout(line_3):
    dag = _dag(Circuit(2).cx(0, 1).measure(0))
    out = PassManager([SetLayout([2, 1], line_3), ApplyLayout(line_3)]).run(dag)
    assert out.n_qubits == 3
    assert out.topological_ops()[0].qubits == (2, 1)
    assert out.topological_ops()[1].qubits == (2,)
    assert out.metadata["initial_layout"].to_list() == [2, 1, 0]
    assert out.metadata["final_layout"].to_list() == [2, 1, 0]


def test_apply_layout_defaults_to_trivial(line_3):
    out = ApplyLayout(line_3)(_dag(Circuit(2).cx(0, 1)))
    assert out.n_qubits == 3
    assert out.metadata["initial_layout"] == Layout.trivial(3)


# =============================================================================
# VF2Layout
# =============================================================================

def test_vf2_embeds_chain(ibm_line_5):
    ps = PropertySet()
    VF2Layout(ibm_line_5)(_dag(_chain(5)), ps)
    assert ps["vf2_layout_stop_reason"] == "solution found"
    layout = ps["layout"]
    for i in range(4):
        assert ibm_line_5.are_connected(layout.logical_to_phys(i), layout.logical_to_phys(i + 1))


def test_vf2_star_on_line_has_no_solution(ibm_line_5):
    ps = PropertySet()
    VF2Layout(ibm_line_5)(_dag(Circuit(4).cx(0, 1).cx(0, 2).cx(0, 3)), ps)
    assert ps["vf2_layout_stop_reason"] == "no solution found"
    assert ps["layout"] is None


def test_vf2_star_on_grid(ibm_grid_4):
    """A 2x2 grid has no degree-3 node either."""
    ps = PropertySet()
    VF2Layout(ibm_grid_4)(_dag(Circuit(4).cx(0, 1).cx(0, 2).cx(0, 3)), ps)
    assert ps["vf2_layout_stop_reason"] == "no solution found"


def test_vf2_call_limit(line_3):
    ps = PropertySet()
    VF2Layout(line_3, call_limit=1)(_dag(Circuit(2).cx(0, 1)), ps)
    assert ps["vf2_layout_stop_reason"] == "call limit reached"


def test_vf2_prefers_low_error_edge():
    target = noisy_line(3, {(0, 1): 0.1, (1, 2): 0.001})
    ps = PropertySet()
    VF2Layout(target)(_dag(Circuit(3).cx(0, 1)), ps)
    assert ps["layout"].to_list() == [1, 2, 0]


def test_vf2_without_interactions(line_3):
    """A circuit without 2Q ops embeds trivially."""
    ps = PropertySet()
    VF2Layout(line_3)(_dag(Circuit(3).h(0).x(2)), ps)
    assert ps["vf2_layout_stop_reason"] == "solution found"
    assert ps["layout"] == Layout.trivial(3)


# =============================================================================
# SabreLayout
# =============================================================================

def test_sabre_layout_chain_needs_no_swaps(ibm_line_5):
    ps = PropertySet()
    SabreLayout(ibm_line_5, seed=7)(_dag(_chain(5)), ps)
    assert ps["sabre_layout_swaps"] == 0
    assert len(ps["layout"]) == 5


def test_sabre_layout_deterministic(ibm_grid_4):
    c = Circuit(4).cx(0, 3).cx(1, 2).cx(0, 2).cx(3, 1).cx(0, 1)
    results = []
    for _ in range(2):
        ps = PropertySet()
        SabreLayout(ibm_grid_4, seed=11)(_dag(c), ps)
        results.append((ps["layout"].to_list(), ps["sabre_layout_swaps"]))
    assert results[0] == results[1]


def test_sabre_layout_uses_property_set_seed(ibm_grid_4):
    c = Circuit(4).cx(0, 3).cx(1, 2).cx(0, 2)
    a, b = PropertySet(seed=5), PropertySet(seed=5)
    SabreLayout(ibm_grid_4)(_dag(c), a)
    SabreLayout(ibm_grid_4)(_dag(c), b)
    assert a["layout"] == b["layout"]


# =============================================================================
# Post layout
# =============================================================================

def test_vf2_post_layout_moves_to_better_edge():
    target = noisy_line(3, {(0, 1): 0.1, (1, 2): 0.001})
    dag = _dag(Circuit(3).cx(0, 1))
    ps = PropertySet()
    VF2PostLayout(target)(dag, ps)
    assert ps["vf2_post_layout_stop_reason"] == "solution found"
    assert ps["post_layout"] == [1, 2, 0]

    out = ApplyPostLayout()(dag, ps)
    assert out.topological_ops()[0].qubits == (1, 2)
    assert out.metadata["initial_layout"].to_list() == [1, 2, 0]
    assert out.metadata["final_layout"].to_list() == [1, 2, 0]


def test_vf2_post_layout_keeps_best():
    target = noisy_line(3, {(0, 1): 0.1, (1, 2): 0.001})
    ps = PropertySet()
    VF2PostLayout(target)(_dag(Circuit(3).cx(1, 2)), ps)
    assert ps["vf2_post_layout_stop_reason"] == "no better solution found"
    assert ps["post_layout"] is None


def test_vf2_post_layout_skips_wide_gates():
    target = noisy_line(3, {(0, 1): 0.1, (1, 2): 0.001})
    ps = PropertySet()
    VF2PostLayout(target)(_dag(Circuit(3).ccx(0, 1, 2)), ps)
    assert ps["vf2_post_layout_stop_reason"] == "more than 2q gates"


def test_vf2_post_layout_needs_error_data(line_3):
    ps = PropertySet()
    VF2PostLayout(line_3)(_dag(Circuit(3).cx(0, 1)), ps)
    assert ps["vf2_post_layout_stop_reason"] == "no error data"


def test_apply_post_layout_noop_without_perm():
    dag = _dag(Circuit(2).cx(0, 1))
    assert ApplyPostLayout()(dag) is dag


def test_apply_post_layout_rejects_bad_perm():
    with pytest.raises(ValidationError):
        ApplyPostLayout()(_dag(Circuit(2).cx(0, 1)), {"post_layout": [0, 0]})
