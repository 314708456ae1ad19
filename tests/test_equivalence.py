"""
Tests for the equivalence library and the basis search.

Tests:
    - Every standard rule and flip rule is exact up to global phase
    - Layered and frozen libraries
    - search_basis() costs and unreachable gates
"""
import pytest

from tinytranspiler.dag import DAGCircuit
from tinytranspiler.equivalence import STANDARD_EQUIVALENCES, EquivalenceLibrary, search_basis
from tinytranspiler.exceptions import UnsupportedOperationError, ValidationError
from tinytranspiler.gates import Gate, gate_by_name
from tinytranspiler.ir import Circuit, Operation
from tinytranspiler.passes import BasisTranslator
from tinytranspiler.simulator import ops_unitary, operators_equal
from conftest import IBM_BASIS

PARAMS = (0.37, 0.61, 1.13)


def _standard_rules():
    cases = []
    for name in sorted(STANDARD_EQUIVALENCES.names()):
        for i, eq in enumerate(STANDARD_EQUIVALENCES.get_equivalences(name)):
            cases.append(pytest.param(name, eq, id=f"{name}-{i}"))
    return cases


FLIPS = ["cx", "ecr", "cz", "cp", "swap", "rzz", "rxx"]


# =============================================================================
# Rule correctness
# =============================================================================

@pytest.mark.parametrize("name,eq", _standard_rules())
def test_standard_rule_is_exact(name, eq):
    gate = gate_by_name(name)
    qubits = tuple(range(gate.n_qubits))
    params = PARAMS[:gate.n_params]
    expected = ops_unitary([Operation(gate, qubits, params)], gate.n_qubits)
    actual = ops_unitary(eq.expand(qubits, params), gate.n_qubits)
    assert operators_equal(expected, actual, tol=1e-9)


@pytest.mark.parametrize("name", FLIPS)
def test_flip_rule_is_exact(name):
    """flip(a, b) implements name(a, b) while applying name on (b, a)."""
    gate = gate_by_name(name)
    params = PARAMS[:gate.n_params]
    ops = STANDARD_EQUIVALENCES.get_flip(name)((0, 1), params)
    assert Operation(gate, (1, 0), params) in ops
    assert all(op.qubits != (0, 1) for op in ops if op.gate is gate)
    expected = ops_unitary([Operation(gate, (0, 1), params)], 2)
    assert operators_equal(expected, ops_unitary(ops, 2), tol=1e-9)


def test_cy_has_no_flip():
    assert STANDARD_EQUIVALENCES.get_flip("cy") is None


def test_rule_produces_counts():
    (swap,) = STANDARD_EQUIVALENCES.get_equivalences("swap")
    assert swap.produces == (("cx", 3),)
    assert swap.size == 3


# =============================================================================
# Library management
# =============================================================================

def test_standard_library_is_frozen():
    assert STANDARD_EQUIVALENCES.frozen
    with pytest.raises(ValidationError, match="frozen"):
        STANDARD_EQUIVALENCES.add_equivalence("h", lambda qs, ps: [])
    with pytest.raises(ValidationError):
        STANDARD_EQUIVALENCES.add_flip("cy", lambda qs, ps: [])


def test_layered_library_prefers_own_rules():
    lib = EquivalenceLibrary(base=STANDARD_EQUIVALENCES)
    eq = lib.add_equivalence("h", lambda qs, ps: [Operation(Gate.RY, qs, (1.5707963267948966,)),
                                                  Operation(Gate.X, qs)])
    rules = lib.get_equivalences("h")
    assert rules[0] is eq
    assert len(rules) == len(STANDARD_EQUIVALENCES.get_equivalences("h")) + 1
    assert "swap" in lib.names()
    assert lib.get_flip("cx") is STANDARD_EQUIVALENCES.get_flip("cx")
    assert not lib.frozen


def test_rule_outside_operands_rejected():
    lib = EquivalenceLibrary()
    with pytest.raises(ValidationError, match="outside"):
        lib.add_equivalence("x", lambda qs, ps: [Operation(Gate.X, (qs[0] + 1,))])


def test_rule_for_unknown_gate_rejected():
    with pytest.raises(ValidationError):
        EquivalenceLibrary().add_equivalence("nope", lambda qs, ps: [])


# =============================================================================
# Basis search
# =============================================================================

def test_search_ibm_costs():
    table = search_basis(STANDARD_EQUIVALENCES, IBM_BASIS)
    assert table["cx"] == (1, None)
    assert table["rz"] == (1, None)
    assert table["h"][0] == 3
    assert table["swap"][0] == 3
    assert table["s"][0] == 1
    assert table["measure"] == (0, None)


def test_search_unreachable_gate():
    """Without sx, ry or u the standard rules cannot reach h."""
    table = search_basis(STANDARD_EQUIVALENCES, {"rz", "x", "cx"})
    assert "h" not in table
    assert table["z"][0] == 1
    assert table["p"][0] == 1


def test_search_sees_library_updates():
    lib = EquivalenceLibrary(base=STANDARD_EQUIVALENCES)
    before = search_basis(lib, {"rz", "x", "cx"})
    assert "h" not in before
    lib.add_equivalence("h", lambda qs, ps: [Operation(Gate.RZ, qs, (1.0,))])
    assert search_basis(lib, {"rz", "x", "cx"})["h"][0] == 1


def test_translator_reports_missing_path():
    c = Circuit(2).h(0).cx(0, 1)
    with pytest.raises(UnsupportedOperationError, match="No path from h"):
        BasisTranslator({"rz", "x", "cx"})(DAGCircuit.from_circuit(c))
