"""
Gate vocabulary.

Contains:
    - Gate: Capability record of an operation kind (arity, params, matrix)
    - GATES: Process-wide name -> Gate table holding the standard vocabulary
    - STANDARD_GATES: Names of the built-in gates
    - register_gate(): Add a user-defined operation kind
    - gate_by_name(): Lookup, raising ValidationError for unknown names

Matrices use qubit 0 as the most significant bit (left factor in kron).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from math import sqrt, cos, sin
from typing import Callable
import numpy as np

from .exceptions import ValidationError


@dataclass(frozen=True)
class Gate:
    """An operation kind. n_qubits == 0 means variadic (barrier)."""
    name: str
    n_qubits: int
    n_params: int = 0
    n_clbits: int = 0
    directive: bool = False
    matrix_fn: Callable[[tuple], np.ndarray] | None = field(default=None, compare=False, repr=False)

    @property
    def has_matrix(self) -> bool: return self.matrix_fn is not None

    def to_matrix(self, params: tuple = ()) -> np.ndarray:
        if self.matrix_fn is None:
            raise ValidationError(f"Gate {self.name!r} has no matrix definition")
        return self.matrix_fn(tuple(float(p) for p in params))

    def __reduce__(self):
        # Registry lookup on unpickle, matrix functions are often lambdas
        return (gate_by_name, (self.name,))


GATES: dict[str, Gate] = {}


def gate_by_name(name: str) -> Gate:
    try:
        return GATES[name]
    except KeyError:
        raise ValidationError(f"Unknown gate {name!r}") from None


def register_gate(name: str, n_qubits: int, n_params: int = 0,
                  matrix: Callable[[tuple], np.ndarray] | None = None) -> Gate:
    """Register a custom operation kind. Re-registering an identical signature is a no-op."""
    if n_qubits < 1:
        raise ValidationError(f"Gate {name!r} must act on at least one qubit")
    g = Gate(name, n_qubits, n_params, matrix_fn=matrix)
    existing = GATES.get(name)
    if existing is not None:
        if existing != g:
            raise ValidationError(f"Gate {name!r} already registered with a different signature")
        return existing
    GATES[name] = g
    return g


def _std(name: str, n_qubits: int, n_params: int = 0, matrix=None, **kw) -> Gate:
    g = Gate(name, n_qubits, n_params, matrix_fn=matrix, **kw)
    GATES[name] = g
    return g


# Gate matrices ----------------------------------------------------------------

_SQRT2_INV, _T = 1 / sqrt(2), np.exp(1j * np.pi / 4)
_I = np.eye(2, dtype=complex)
_X = np.array([[0, 1], [1, 0]], dtype=complex)
_Y = np.array([[0, -1j], [1j, 0]], dtype=complex)
_Z = np.array([[1, 0], [0, -1]], dtype=complex)
_H = np.array([[1, 1], [1, -1]], dtype=complex) * _SQRT2_INV
_SX = np.array([[1 + 1j, 1 - 1j], [1 - 1j, 1 + 1j]], dtype=complex) / 2


def _rx(t): return np.array([[cos(t/2), -1j*sin(t/2)], [-1j*sin(t/2), cos(t/2)]], dtype=complex)
def _ry(t): return np.array([[cos(t/2), -sin(t/2)], [sin(t/2), cos(t/2)]], dtype=complex)
def _rz(t): return np.array([[np.exp(-1j*t/2), 0], [0, np.exp(1j*t/2)]], dtype=complex)
def _p(t): return np.array([[1, 0], [0, np.exp(1j*t)]], dtype=complex)


def _u(theta, phi, lam):
    return np.array([[cos(theta/2), -np.exp(1j*lam) * sin(theta/2)],
                     [np.exp(1j*phi) * sin(theta/2), np.exp(1j*(phi + lam)) * cos(theta/2)]], dtype=complex)


def _controlled(m: np.ndarray) -> np.ndarray:
    out = np.eye(2 * m.shape[0], dtype=complex)
    out[m.shape[0]:, m.shape[0]:] = m
    return out


_SWAP = np.array([[1, 0, 0, 0], [0, 0, 1, 0], [0, 1, 0, 0], [0, 0, 0, 1]], dtype=complex)
_ECR = np.array([[0, 0, 1, 1j], [0, 0, 1j, 1], [1, -1j, 0, 0], [-1j, 1, 0, 0]], dtype=complex) * _SQRT2_INV
_XX = np.kron(_X, _X)


def _rzz(t): return np.diag([np.exp(-1j*t/2), np.exp(1j*t/2), np.exp(1j*t/2), np.exp(-1j*t/2)])
def _rxx(t): return cos(t/2) * np.eye(4, dtype=complex) - 1j * sin(t/2) * _XX


# Standard vocabulary ----------------------------------------------------------

Gate.ID = _std("id", 1, matrix=lambda p: _I)
Gate.X = _std("x", 1, matrix=lambda p: _X)
Gate.Y = _std("y", 1, matrix=lambda p: _Y)
Gate.Z = _std("z", 1, matrix=lambda p: _Z)
Gate.H = _std("h", 1, matrix=lambda p: _H)
Gate.S = _std("s", 1, matrix=lambda p: _p(np.pi / 2))
Gate.SDG = _std("sdg", 1, matrix=lambda p: _p(-np.pi / 2))
Gate.T = _std("t", 1, matrix=lambda p: np.diag([1, _T]))
Gate.TDG = _std("tdg", 1, matrix=lambda p: np.diag([1, np.conj(_T)]))
Gate.SX = _std("sx", 1, matrix=lambda p: _SX)
Gate.SXDG = _std("sxdg", 1, matrix=lambda p: _SX.conj().T)
Gate.RX = _std("rx", 1, 1, matrix=lambda p: _rx(p[0]))
Gate.RY = _std("ry", 1, 1, matrix=lambda p: _ry(p[0]))
Gate.RZ = _std("rz", 1, 1, matrix=lambda p: _rz(p[0]))
Gate.P = _std("p", 1, 1, matrix=lambda p: _p(p[0]))
Gate.U = _std("u", 1, 3, matrix=lambda p: _u(*p))

Gate.CX = _std("cx", 2, matrix=lambda p: _controlled(_X))
Gate.CY = _std("cy", 2, matrix=lambda p: _controlled(_Y))
Gate.CZ = _std("cz", 2, matrix=lambda p: _controlled(_Z))
Gate.CP = _std("cp", 2, 1, matrix=lambda p: _controlled(_p(p[0])))
Gate.SWAP = _std("swap", 2, matrix=lambda p: _SWAP)
Gate.ECR = _std("ecr", 2, matrix=lambda p: _ECR)
Gate.RZZ = _std("rzz", 2, 1, matrix=lambda p: _rzz(p[0]))
Gate.RXX = _std("rxx", 2, 1, matrix=lambda p: _rxx(p[0]))

Gate.CCX = _std("ccx", 3, matrix=lambda p: _controlled(_controlled(_X)))
Gate.CCZ = _std("ccz", 3, matrix=lambda p: _controlled(_controlled(_Z)))

Gate.MEASURE = _std("measure", 1, n_clbits=1, directive=True)
Gate.RESET = _std("reset", 1, directive=True)
Gate.BARRIER = _std("barrier", 0, directive=True)

STANDARD_GATES = frozenset(GATES)

DIRECTIVES = frozenset({"measure", "reset", "barrier"})
# Two-qubit gates whose matrix is invariant under exchanging the qubits
SYMMETRIC_2Q = frozenset({"cz", "cp", "swap", "rzz", "rxx"})
