"""
Unitary construction for verifying transpiled circuits.

Contains:
    - to_unitary(): Full unitary of a measurement-free circuit (qubit 0 = MSB)
    - operators_equal(): Equality up to global phase
    - equivalent(): Layout-aware check  U_out == P_final . U_in . P_initial^dagger
"""
from __future__ import annotations

from math import pi
import numpy as np

from .exceptions import ValidationError
from .ir import Circuit, Operation

MAX_QUBITS = 12


def _apply(U: np.ndarray, matrix: np.ndarray, qubits: tuple[int, ...], n: int) -> np.ndarray:
    """Left-multiply the (2,)*2n tensor U by a k-qubit gate acting on ``qubits``."""
    k = len(qubits)
    m = matrix.reshape([2] * (2 * k))
    out = np.tensordot(m, U, axes=(list(range(k, 2 * k)), list(qubits)))
    return np.moveaxis(out, list(range(k)), list(qubits))


def ops_unitary(ops: list[Operation], n: int) -> np.ndarray:
    """Unitary of an op list on n qubits."""
    if n > MAX_QUBITS: raise ValidationError(f"to_unitary supports at most {MAX_QUBITS} qubits")
    U = np.eye(2 ** n, dtype=complex).reshape([2] * (2 * n))
    for op in ops:
        if op.name == "barrier": continue
        if op.gate.directive: raise ValidationError(f"to_unitary does not support {op.name}", operation=op)
        if op.condition is not None: raise ValidationError("to_unitary does not support conditional operations", operation=op)
        if op.is_parameterized: raise TypeError(f"Cannot compute unitary: {op.name} has unbound Parameter")
        U = _apply(U, op.gate.to_matrix(op.params), op.qubits, n)
    return U.reshape(2 ** n, 2 ** n)


def to_unitary(circuit: Circuit) -> np.ndarray:
    """Build full unitary matrix of the circuit."""
    return ops_unitary(circuit.ops, circuit.n_qubits)


def operators_equal(a: np.ndarray, b: np.ndarray, tol: float = 1e-8) -> bool:
    """Check if two unitaries are equal up to global phase."""
    if a.shape != b.shape: return False
    d = a.shape[0]
    return abs(np.trace(a.conj().T @ b)) / d > 1 - tol


def permute_operator(U: np.ndarray, out_l2p: list[int], in_l2p: list[int]) -> np.ndarray:
    """Relabel a logical-space operator into physical space: P_out . U . P_in^dagger."""
    n = len(out_l2p)
    p2l_out, p2l_in = [0] * n, [0] * n
    for lq, pq in enumerate(out_l2p): p2l_out[pq] = lq
    for lq, pq in enumerate(in_l2p): p2l_in[pq] = lq
    T = U.reshape([2] * (2 * n))
    T = np.transpose(T, p2l_out + [n + p2l_in[p] for p in range(n)])
    return T.reshape(2 ** n, 2 ** n)


def equivalent(original: Circuit, transpiled: Circuit, tol: float = 1e-8, n_samples: int = 3) -> bool:
    """Operator equivalence of a transpiled circuit, modulo its initial/final layout.

    Parameterized circuits are checked at a few random parameter values.
    """
    if original.is_parameterized:
        rng = np.random.default_rng(42)
        names = sorted(p.name for p in original.parameters)
        for _ in range(n_samples):
            vals = {name: rng.uniform(0, 2 * pi) for name in names}
            if not equivalent(original.bind(vals), transpiled.bind(vals), tol):
                return False
        return True

    n = transpiled.n_qubits
    if n < original.n_qubits:
        return False
    U_in = ops_unitary(original.ops, n)
    U_out = ops_unitary(transpiled.ops, n)
    layout = transpiled.layout
    if layout is not None:
        U_in = permute_operator(U_in, layout.final.to_list(), layout.initial.to_list())
    return operators_equal(U_in, U_out, tol)
