"""Single-qubit Euler decompositions.

Contains:
    - euler_angles(): ZYZ angles of a 2x2 unitary,  U ∝ RZ(φ) · RY(θ) · RZ(λ)
    - synthesize_1q(): Op list for a 2x2 unitary in one Euler basis
    - euler_bases(): Euler bases a set of gate names can express
    - best_1q(): Shortest synthesis over every basis the gate set allows

Ops are returned in CIRCUIT order (first element applied first).
"""
from __future__ import annotations

from math import pi, atan2
import numpy as np

from ..gates import Gate
from ..ir import Operation

_TOL = 1e-10

# name -> gate names the basis needs
EULER_BASES: dict[str, frozenset[str]] = {
    "ZSX": frozenset({"rz", "sx"}),
    "PSX": frozenset({"p", "sx"}),
    "ZXZ": frozenset({"rz", "rx"}),
    "ZYZ": frozenset({"rz", "ry"}),
    "U": frozenset({"u"}),
}


def _mod2pi(a: float) -> float:
    """Wrap angle into [-π, π)."""
    return (a + pi) % (2 * pi) - pi


def euler_angles(U: np.ndarray) -> tuple[float, float, float]:
    """Return (θ, φ, λ) with U = e^{iα} RZ(φ) RY(θ) RZ(λ).

    For U ∈ SU(2):
      U = [[cos(θ/2) e^{-i(φ+λ)/2}, -sin(θ/2) e^{-i(φ-λ)/2}],
           [sin(θ/2) e^{ i(φ-λ)/2},  cos(θ/2) e^{ i(φ+λ)/2}]]
    """
    det = U[0, 0] * U[1, 1] - U[0, 1] * U[1, 0]
    V = U * np.exp(-0.5j * np.angle(det))
    theta = 2 * atan2(abs(V[1, 0]), abs(V[0, 0]))
    plus = -2 * float(np.angle(V[0, 0])) if abs(V[0, 0]) > _TOL else 0.0
    minus = 2 * float(np.angle(V[1, 0])) if abs(V[1, 0]) > _TOL else 0.0
    return theta, (plus + minus) / 2, (plus - minus) / 2


def _z(gate: Gate, q: int, angle: float, tol: float) -> list[Operation]:
    a = _mod2pi(angle)
    return [] if abs(a) < tol else [Operation(gate, (q,), (a,))]


def synthesize_1q(U: np.ndarray, qubit: int, basis: str = "ZYZ", use_x: bool = False,
                  tol: float = 1e-9) -> list[Operation]:
    """Decompose a 2x2 unitary in the given Euler basis. Returns [] for the identity."""
    theta, phi, lam = euler_angles(U)
    if basis == "U":
        if abs(theta) < tol and abs(_mod2pi(phi + lam)) < tol: return []
        return [Operation(Gate.U, (qubit,), (theta, _mod2pi(phi), _mod2pi(lam)))]

    zg = Gate.P if basis == "PSX" else Gate.RZ
    if abs(theta) < tol:
        return _z(zg, qubit, phi + lam, tol)

    if basis == "ZYZ":
        return _z(zg, qubit, lam, tol) + [Operation(Gate.RY, (qubit,), (theta,))] + _z(zg, qubit, phi, tol)
    # RY(θ) = RZ(π/2) RX(θ) RZ(-π/2)
    if basis == "ZXZ":
        return (_z(zg, qubit, lam - pi / 2, tol) + [Operation(Gate.RX, (qubit,), (theta,))]
                + _z(zg, qubit, phi + pi / 2, tol))
    if basis not in ("ZSX", "PSX"):
        raise ValueError(f"Unknown Euler basis {basis!r}")
    # SX ∝ RX(π/2), X ∝ RX(π)
    if abs(theta - pi / 2) < tol:
        return _z(zg, qubit, lam - pi / 2, tol) + [Operation(Gate.SX, (qubit,))] + _z(zg, qubit, phi + pi / 2, tol)
    if use_x and abs(theta - pi) < tol:
        return _z(zg, qubit, lam - pi / 2, tol) + [Operation(Gate.X, (qubit,))] + _z(zg, qubit, phi + pi / 2, tol)
    return (_z(zg, qubit, lam, tol) + [Operation(Gate.SX, (qubit,))] + _z(zg, qubit, theta + pi, tol)
            + [Operation(Gate.SX, (qubit,))] + _z(zg, qubit, phi + pi, tol))


def euler_bases(basis_gates) -> list[str]:
    names = set(basis_gates)
    return [b for b, needed in EULER_BASES.items() if needed <= names]


def best_1q(U: np.ndarray, qubit: int, basis_gates) -> list[Operation] | None:
    """Shortest synthesis over all Euler bases available in ``basis_gates``. None if there are none."""
    bases = euler_bases(basis_gates)
    if not bases: return None
    use_x = "x" in basis_gates
    return min((synthesize_1q(U, qubit, b, use_x) for b in bases), key=len)
