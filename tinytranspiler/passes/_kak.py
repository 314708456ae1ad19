"""KAK (Cartan) decomposition and CX-based synthesis of 2-qubit unitaries.

Decomposes any U ∈ U(4) as: U = g * kron(A1, A0) · Ud · kron(B1, B0)
where Ud = exp(i(xx·XX + yy·YY + zz·ZZ)). A1/B1 act on local qubit 0 (MSB),
A0/B0 on local qubit 1.

Contains:
    - kak_decompose(): SVD-based bidiagonalization in the magic basis (numpy only)
    - num_basis_gates(): CX count of the interaction coordinates
    - two_qubit_decompose(): Exact or approximate synthesis with 0..3 CX

Each interaction coordinate reduces mod π/2 (exp(iπ/2·PP) = i·PP is local),
and the reduced point picks the circuit:
    0 CX: all coordinates zero (U is a tensor product)
    1 CX: one coordinate ±π/4, the rest zero, exp(iπ/4·ZX) ∝ RZ(-π/2)⊗RX(-π/2) · CX
    2 CX: one coordinate zero, exp(i(a·XX + c·ZZ)) = CX · RX(-2a)⊗RZ(-2c) · CX
    3 CX: general case
"""
from __future__ import annotations

import logging
from math import pi, sqrt
import numpy as np

from ..gates import Gate
from ..ir import Operation
from ..simulator import ops_unitary, operators_equal
from ._euler import synthesize_1q

logger = logging.getLogger(__name__)

_I2 = np.eye(2, dtype=complex)
_X = np.array([[0, 1], [1, 0]], dtype=complex)
_Y = np.array([[0, -1j], [1j, 0]], dtype=complex)
_Z = np.array([[1, 0], [0, -1]], dtype=complex)
_H = np.array([[1, 1], [1, -1]], dtype=complex) / sqrt(2)
_PAULIS = (_X, _Y, _Z)

# Magic basis: local unitaries become SO(4), the entangling part becomes diagonal
_M = np.array([
    [1, 0, 0, 1j],
    [0, 1j, 1, 0],
    [0, 1j, -1, 0],
    [1, 0, 0, -1j],
], dtype=complex) / sqrt(2)
_Md = _M.conj().T

# Diagonal phases (xx+yy-zz, -xx+yy+zz, xx-yy+zz, -xx-yy-zz) -> (phase, xx, yy, zz)
_KAK_GAMMA = np.array([
    [1, 1, 1, 1],
    [1, 1, -1, -1],
    [-1, 1, -1, 1],
    [1, -1, -1, 1],
], dtype=float) * 0.25


def _rz(t): return np.array([[np.exp(-0.5j * t), 0], [0, np.exp(0.5j * t)]], dtype=complex)
def _rx(t): return np.cos(t / 2) * _I2 - 1j * np.sin(t / 2) * _X


def _to_su4(U: np.ndarray) -> np.ndarray:
    return U * np.exp(-1j * np.angle(np.linalg.det(U)) / 4)


def _nearest_su2(M: np.ndarray) -> np.ndarray:
    """Project 2x2 matrix to SU(2) via polar decomposition."""
    U, _, Vh = np.linalg.svd(M)
    S = U @ Vh
    return S * np.exp(-1j * np.angle(np.linalg.det(S)) / 2)


def _bidiag_real_pair(A: np.ndarray, B: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Find real orthogonal L, R with L @ (A + iB) @ R diagonal.

    A, B are the real and imaginary parts of a unitary in the magic basis.
    The SVD of A fixes L, R up to rotations inside degenerate singular-value
    blocks; those rotations are chosen to diagonalize B.
    """
    Ua, Sa, VaT = np.linalg.svd(A)
    if np.linalg.det(Ua) < 0:
        Ua[:, -1] *= -1
        Sa[-1] *= -1
    if np.linalg.det(VaT) < 0:
        VaT[-1, :] *= -1
        Sa[-1] *= -1
    Va = VaT.T
    Bp = Ua.T @ B @ Va

    n = len(Sa)
    Q = np.eye(n)
    i = 0
    while i < n:
        j = i + 1
        while j < n and abs(abs(Sa[i]) - abs(Sa[j])) < 1e-9:
            j += 1
        if j - i > 1:
            block = (Bp[i:j, i:j] + Bp[i:j, i:j].T) / 2
            Q[i:j, i:j] = np.linalg.eigh(block)[1]
        i = j

    L, R = Q.T @ Ua.T, Va @ Q
    phases = np.diag(L @ (A + 1j * B) @ R).copy()
    if np.linalg.det(L) < 0:
        L[0, :] *= -1
        phases[0] = -phases[0]
    if np.linalg.det(R) < 0:
        R[:, 0] *= -1
        phases[0] = -phases[0]
    return L, phases, R


def _extract_su2_pair(K: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Extract (U0, U1) from K ≈ kron(U1, U0) up to global phase."""
    blocks = [K[0:2, 0:2], K[0:2, 2:4], K[2:4, 0:2], K[2:4, 2:4]]
    best = max(blocks, key=np.linalg.norm)
    U0 = _nearest_su2(best / np.linalg.norm(best))
    prod = K @ np.kron(_I2, U0.conj().T)
    U1 = _nearest_su2(np.array([[prod[0, 0], prod[0, 2]], [prod[2, 0], prod[2, 2]]]))
    return U0, U1


def kak_decompose(U: np.ndarray):
    """KAK decomposition of a 4x4 unitary.

    Returns (A0, A1, xx, yy, zz, B0, B1) with raw (not canonicalized) angles:
        U ≈ phase * kron(A1, A0) @ Ud(xx, yy, zz) @ kron(B1, B0)
    """
    M_magic = _Md @ _to_su4(U) @ _M
    L, diag_d, R = _bidiag_real_pair(M_magic.real.copy(), M_magic.imag.copy())
    raw = _KAK_GAMMA @ np.angle(diag_d)
    A0, A1 = _extract_su2_pair(_M @ L.T.astype(complex) @ _Md)
    B0, B1 = _extract_su2_pair(_M @ R.T.astype(complex) @ _Md)
    return A0, A1, float(raw[1]), float(raw[2]), float(raw[3]), B0, B1


def interaction(xx: float, yy: float, zz: float) -> np.ndarray:
    """Ud = exp(i(xx·XX + yy·YY + zz·ZZ)). The three terms commute."""
    out = np.eye(4, dtype=complex)
    for a, P in zip((xx, yy, zz), _PAULIS):
        out = out @ (np.cos(a) * np.eye(4) + 1j * np.sin(a) * np.kron(P, P))
    return out


def _reduce(coords) -> tuple[list[float], list[int]]:
    """Split each coordinate into r + k·π/2 with r in (-π/4, π/4]. Returns (r, k mod 2)."""
    rs, parity = [], []
    for v in coords:
        k = round(v / (pi / 2))
        r = v - k * pi / 2
        if r <= -pi / 4 + 1e-12:
            r += pi / 2
            k -= 1
        rs.append(r)
        parity.append(k % 2)
    return rs, parity


def num_basis_gates(xx: float, yy: float, zz: float, tol: float = 1e-7) -> int:
    """Minimum number of CX needed for the interaction coordinates."""
    r, _ = _reduce((xx, yy, zz))
    mags = sorted((abs(v) for v in r), reverse=True)
    if mags[0] < tol: return 0
    if abs(mags[0] - pi / 4) < tol and mags[1] < tol: return 1
    if mags[2] < tol: return 2
    return 3


def _approximations(r: list[float]) -> list[list[float]]:
    """Best reduced point reachable with k = 0, 1, 2, 3 CX."""
    order = sorted(range(3), key=lambda i: abs(r[i]))
    one = [0.0, 0.0, 0.0]
    one[order[2]] = pi / 4 if r[order[2]] >= 0 else -pi / 4
    two = list(r)
    two[order[0]] = 0.0
    return [[0.0, 0.0, 0.0], one, two, list(r)]


def _trace_fidelity(a: np.ndarray, b: np.ndarray) -> float:
    return (4 + abs(np.trace(a.conj().T @ b)) ** 2) / 20


def _choose(r: list[float], basis_fidelity: float) -> tuple[int, list[float]]:
    target = interaction(*r)
    fids = [_trace_fidelity(interaction(*p), target) for p in _approximations(r)]
    if basis_fidelity >= 1.0:
        k = next(i for i, f in enumerate(fids) if f > 1 - 1e-9)
    else:
        scores = [f * basis_fidelity ** i for i, f in enumerate(fids)]
        k = max(range(4), key=lambda i: (scores[i], -i))
    return k, _approximations(r)[k]


def _local(M, q) -> list[Operation]:
    return synthesize_1q(M, q, "ZYZ")


def _synth_0(A0, A1, B0, B1) -> list[Operation]:
    return _local(A1 @ B1, 0) + _local(A0 @ B0, 1)


# Local W with W (Z⊗X) W† = P⊗P, indexed by the axis of P
_ZX_TO_PP = {0: (_H, _I2), 1: (_rx(-pi / 2), _rz(pi / 2)), 2: (_I2, _H)}


def _synth_1(A0, A1, B0, B1, point) -> list[Operation]:
    axis = max(range(3), key=lambda i: abs(point[i]))
    P = _PAULIS[axis]
    if point[axis] < 0:
        # exp(-iπ/4·PP) ∝ exp(iπ/4·PP) · P⊗P
        B0, B1 = P @ B0, P @ B1
    w0, w1 = _ZX_TO_PP[axis]
    ops = _local(w0.conj().T @ B1, 0) + _local(w1.conj().T @ B0, 1)
    ops.append(Operation(Gate.CX, (0, 1)))
    return ops + _local(A1 @ w0 @ _rz(-pi / 2), 0) + _local(A0 @ w1 @ _rx(-pi / 2), 1)


def _synth_2(A0, A1, B0, B1, point, tol: float = 1e-10) -> list[Operation]:
    zero = min(range(3), key=lambda i: abs(point[i]))
    if zero == 1:
        v, a, c = _I2, point[0], point[2]
    elif zero == 2:
        # RX(-π/2) maps Z -> Y, keeps X
        v, a, c = _rx(-pi / 2), point[0], point[1]
    else:
        # RZ(π/2) maps X -> Y, keeps Z
        v, a, c = _rz(pi / 2), point[1], point[2]
    vd = v.conj().T
    ops = _local(vd @ B1, 0) + _local(vd @ B0, 1)
    ops.append(Operation(Gate.CX, (0, 1)))
    if abs(a) > tol: ops.append(Operation(Gate.RX, (0,), (-2 * a,)))
    if abs(c) > tol: ops.append(Operation(Gate.RZ, (1,), (-2 * c,)))
    ops.append(Operation(Gate.CX, (0, 1)))
    return ops + _local(A1 @ v, 0) + _local(A0 @ v, 1)


def _synth_3(A0, A1, xx, yy, zz, B0, B1, tol: float = 1e-9) -> list[Operation]:
    """3-CX circuit for raw interaction angles."""
    a = (xx * (-2 / pi) + 0.5) * pi
    b = (yy * (-2 / pi) + 0.5) * pi
    c = (zz * (-2 / pi) + 0.5) * pi
    ops = _local(B1, 0) + _local(B0, 1)
    ops.append(Operation(Gate.RX, (1,), (pi / 2,)))
    ops.append(Operation(Gate.CX, (1, 0)))
    if abs(a) > tol: ops.append(Operation(Gate.RX, (1,), (a,)))
    if abs(b) > tol: ops.append(Operation(Gate.RY, (0,), (b,)))
    ops.append(Operation(Gate.CX, (0, 1)))
    ops.append(Operation(Gate.RX, (0,), (-pi / 2,)))
    if abs(c) > tol: ops.append(Operation(Gate.RZ, (0,), (c,)))
    ops.append(Operation(Gate.CX, (1, 0)))
    return ops + _local(A1, 0) + _local(A0, 1)


def two_qubit_decompose(U: np.ndarray, basis_fidelity: float = 1.0) -> list[Operation] | None:
    """Synthesize a 4x4 unitary on local qubits (0, 1) with cx, rx, ry, rz.

    basis_fidelity < 1 allows dropping CX when fidelity(k CX) · basis_fidelity^k
    is better. Every candidate is checked numerically; returns None when
    no candidate reproduces its target (numerically degenerate input).
    """
    A0, A1, xx, yy, zz, B0, B1 = kak_decompose(U)
    if not operators_equal(np.kron(A1, A0) @ interaction(xx, yy, zz) @ np.kron(B1, B0), U, 1e-7):
        logger.debug("KAK reconstruction failed; keeping original block")
        return None

    r, parity = _reduce((xx, yy, zz))
    PP = _I2
    for P, odd in zip(_PAULIS, parity):
        if odd: PP = PP @ P
    A0r, A1r = A0 @ PP, A1 @ PP
    k, point = _choose(r, basis_fidelity)

    if k == 0:
        ops = _synth_0(A0r, A1r, B0, B1)
    elif k == 1:
        ops = _synth_1(A0r, A1r, B0, B1, point)
    elif k == 2:
        ops = _synth_2(A0r, A1r, B0, B1, point)
    else:
        ops = _synth_3(A0, A1, xx, yy, zz, B0, B1)
    expected = np.kron(A1r, A0r) @ interaction(*point) @ np.kron(B1, B0)
    if operators_equal(ops_unitary(ops, 2), expected, 1e-7):
        return ops
    logger.debug("%d-CX synthesis failed its check; using the 3-CX circuit", k)
    ops = _synth_3(A0, A1, xx, yy, zz, B0, B1)
    return ops if operators_equal(ops_unitary(ops, 2), U, 1e-7) else None
