"""
Tests for basis translation, 3Q unrolling and gate direction.

Tests:
    - Standard gates reach each hardware basis exactly
    - Parameterized and conditional ops
    - Custom gates: matrix synthesis, user rules, opaque gates
    - GateDirection on directed and one-way calibrated couplers
"""
from math import pi

import numpy as np
import pytest

from tinytranspiler.dag import DAGCircuit
from tinytranspiler.equivalence import STANDARD_EQUIVALENCES, EquivalenceLibrary
from tinytranspiler.exceptions import UnsupportedOperationError
from tinytranspiler.gates import Gate, DIRECTIVES, register_gate
from tinytranspiler.ir import Circuit, Operation, Parameter
from tinytranspiler.passes import BasisTranslator, Unroll3qOrMore, GateDirection
from tinytranspiler.simulator import to_unitary, operators_equal, equivalent
from tinytranspiler.target import Target, InstructionProperties
from conftest import IBM_BASIS, ECR_BASIS, RIGETTI_BASIS, IONQ_BASIS, line_topology


def _mixed_circuit() -> Circuit:
    return (Circuit(3).h(0).s(1).t(2).y(0).rx(1, 0.3).ry(2, 1.1).u(0, 0.1, 0.2, 0.3)
            .cz(0, 1).cp(1, 2, 0.7).rzz(0, 2, 0.4).swap(1, 2).cy(0, 1).sxdg(2).p(1, 0.5)
            .rxx(0, 1, 0.9).ecr(2, 0).tdg(1).sdg(0).z(2).sx(1).x(0).cx(2, 1))


def _in_basis(circuit: Circuit, basis) -> bool:
    return all(op.name in basis or op.name in DIRECTIVES for op in circuit)


# =============================================================================
# BasisTranslator
# =============================================================================

def test_swap_to_three_cx():
    out = BasisTranslator(IBM_BASIS)(Circuit(2).swap(0, 1))
    assert [op.name for op in out] == ["cx", "cx", "cx"]
    assert [op.qubits for op in out] == [(0, 1), (1, 0), (0, 1)]


def test_h_to_rz_sx_rz():
    out = BasisTranslator(IBM_BASIS)(Circuit(1).h(0))
    assert [op.name for op in out] == ["rz", "sx", "rz"]
    assert out.ops[0].params == (pi / 2,)


def test_basis_ops_untouched():
    c = Circuit(2).rz(0, 0.2).sx(1).cx(0, 1).measure(0)
    assert BasisTranslator(IBM_BASIS)(c).ops == c.ops


@pytest.mark.parametrize("basis", [IBM_BASIS, ECR_BASIS, RIGETTI_BASIS, IONQ_BASIS],
                         ids=["ibm", "ecr", "rigetti", "ionq"])
def test_mixed_circuit_reaches_basis(basis):
    c = _mixed_circuit()
    out = BasisTranslator(basis)(c)
    assert _in_basis(out, basis)
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_translator_from_target(ecr_line_3):
    out = BasisTranslator(target=ecr_line_3)(Circuit(2).cx(0, 1))
    assert out.count_ops()["ecr"] == 1
    assert _in_basis(out, ECR_BASIS)


def test_parameterized_rotation():
    theta = Parameter("theta")
    c = Circuit(1).rx(0, theta)
    out = BasisTranslator(IBM_BASIS)(c)
    assert out.is_parameterized
    assert _in_basis(out, IBM_BASIS)
    assert equivalent(c, out)


def test_conditional_op_keeps_condition():
    c = Circuit(2, 1).measure(0, 0)
    with c.c_if(0, 1):
        c.h(1)
    out = BasisTranslator(IBM_BASIS)(c)
    assert out.ops[0].name == "measure"
    assert [op.name for op in out.ops[1:]] == ["rz", "sx", "rz"]
    assert all(op.condition == (0, 1) for op in out.ops[1:])


def test_expansions_are_memoised_per_params():
    c = Circuit(2).h(0).h(1).rx(0, 0.1).rx(1, 0.2)
    out = BasisTranslator(IBM_BASIS)(c)
    assert operators_equal(to_unitary(out), to_unitary(c))


# =============================================================================
# Custom gates
# =============================================================================

def test_custom_1q_matrix_gate():
    sqrt_x = np.array([[1 + 1j, 1 - 1j], [1 - 1j, 1 + 1j]]) / 2
    register_gate("dec_test_sqrtx", 1, matrix=lambda p: sqrt_x)
    c = Circuit(1).append("dec_test_sqrtx", (0,))
    out = BasisTranslator(IBM_BASIS)(c)
    assert _in_basis(out, IBM_BASIS)
    assert len(out) <= 3
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_custom_1q_matrix_gate_without_euler_basis():
    """A basis without an Euler pair still works through ZYZ and the rules."""
    register_gate("dec_test_phase", 1, 1, matrix=lambda p: np.diag([1, np.exp(1j * p[0])]))
    c = Circuit(1).append("dec_test_phase", (0,), (0.4,))
    out = BasisTranslator({"rz", "x", "cx"})(c)
    assert _in_basis(out, {"rz", "x", "cx"})
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_custom_2q_matrix_gate():
    iswap = np.array([[1, 0, 0, 0], [0, 0, 1j, 0], [0, 1j, 0, 0], [0, 0, 0, 1]], dtype=complex)
    register_gate("dec_test_iswap", 2, matrix=lambda p: iswap)
    c = Circuit(2).append("dec_test_iswap", (1, 0))
    out = BasisTranslator(IBM_BASIS)(c)
    assert _in_basis(out, IBM_BASIS)
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_custom_rule_in_layered_library():
    register_gate("dec_test_hadamard_like", 1)
    lib = EquivalenceLibrary(base=STANDARD_EQUIVALENCES)
    lib.add_equivalence("dec_test_hadamard_like", lambda qs, ps: [Operation(Gate.H, qs)])
    out = BasisTranslator(IBM_BASIS, equivalence_library=lib)(Circuit(1).append("dec_test_hadamard_like", (0,)))
    assert [op.name for op in out] == ["rz", "sx", "rz"]


def test_opaque_gate_has_no_path():
    register_gate("dec_test_opaque", 1)
    with pytest.raises(UnsupportedOperationError, match="No path from dec_test_opaque"):
        BasisTranslator(IBM_BASIS)(Circuit(1).append("dec_test_opaque", (0,)))


# =============================================================================
# Unroll3qOrMore
# =============================================================================

def test_unroll_ccx():
    c = Circuit(3).ccx(0, 1, 2)
    out = Unroll3qOrMore()(c)
    assert len(out) == 15
    assert max(len(op.qubits) for op in out) == 2
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_unroll_ccz_recursive():
    c = Circuit(3).h(0).ccz(2, 0, 1)
    out = Unroll3qOrMore()(c)
    assert all(len(op.qubits) <= 2 for op in out)
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_unroll_keeps_basis_3q_ops():
    c = Circuit(3).ccx(0, 1, 2)
    assert Unroll3qOrMore(basis_gates={"ccx"})(c).ops == c.ops


def test_unroll_conditional():
    c = Circuit(3, 1)
    with c.c_if(0, 0):
        c.ccx(0, 1, 2)
    out = Unroll3qOrMore()(c)
    assert len(out) == 15
    assert all(op.condition == (0, 0) for op in out)


def test_unroll_without_rule():
    register_gate("dec_test_3q_opaque", 3)
    with pytest.raises(UnsupportedOperationError):
        Unroll3qOrMore()(Circuit(3).append("dec_test_3q_opaque", (0, 1, 2)))


# =============================================================================
# GateDirection
# =============================================================================

def test_direction_flips_reversed_cx(directed_line_3):
    c = Circuit(3).cx(1, 0).cx(1, 2)
    out = GateDirection(directed_line_3)(c)
    cxs = [op for op in out if op.name == "cx"]
    assert [op.qubits for op in cxs] == [(0, 1), (1, 2)]
    assert out.count_ops()["h"] == 4
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_direction_flips_symmetric_gates(directed_line_3):
    out = GateDirection(directed_line_3)(Circuit(3).cz(2, 1))
    assert out.ops == [Operation(Gate.CZ, (1, 2))]


def test_direction_without_flip_rule(directed_line_3):
    with pytest.raises(UnsupportedOperationError, match="no flip rule"):
        GateDirection(directed_line_3)(Circuit(2).cy(1, 0))


def test_direction_leaves_uncoupled_pairs(directed_line_3):
    c = Circuit(3).cx(2, 0)
    assert GateDirection(directed_line_3)(c).ops == c.ops


def test_direction_follows_one_way_calibration():
    """An undirected target whose cx is calibrated one way only still gets flipped."""
    target = Target(n_qubits=3, edges=line_topology(3), basis_gates=IBM_BASIS,
                    properties={"cx": {(0, 1): InstructionProperties(3.0, 0.01),
                                       (1, 2): InstructionProperties(3.0, 0.01)}})
    c = Circuit(3).cx(1, 0).cx(2, 1).cx(0, 1)
    out = GateDirection(target)(c)
    assert [op.qubits for op in out if op.name == "cx"] == [(0, 1), (1, 2), (0, 1)]
    assert operators_equal(to_unitary(out), to_unitary(c))


def test_direction_keeps_non_basis_gates_on_calibrated_target():
    target = Target(n_qubits=2, edges=line_topology(2), basis_gates=IBM_BASIS,
                    properties={"cx": {(0, 1): InstructionProperties(3.0, 0.01)}})
    c = Circuit(2).cz(1, 0)
    assert GateDirection(target)(c).ops == c.ops


def test_direction_noop_when_undirected(line_3):
    c = Circuit(3).cx(1, 0).cy(2, 1)
    assert GateDirection(line_3)(c).ops == c.ops
