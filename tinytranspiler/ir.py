"""
Core IR types - the flat program representation users build and receive.

Contains:
    - Parameter: Named symbolic angle
    - ParameterExpression: Affine combination of Parameters (a*θ + b)
    - Operation: Frozen record (gate, qubits, params, clbits, condition)
    - Circuit: Lazy builder, just appends Operations
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
import numpy as np

from .gates import Gate, gate_by_name

if TYPE_CHECKING:
    from .layout import TranspileLayout


class _Affine:
    """Arithmetic shared by Parameter and ParameterExpression (linear only)."""
    __slots__ = ()

    def _expr(self) -> ParameterExpression: raise NotImplementedError
    def __add__(self, other): return self._expr()._combine(other, 1.0)
    def __radd__(self, other): return self._expr()._combine(other, 1.0)
    def __sub__(self, other): return self._expr()._combine(other, -1.0)
    def __rsub__(self, other): return (-self._expr())._combine(other, 1.0)
    def __neg__(self): return self._expr()._scale(-1.0)

    def __mul__(self, other):
        if isinstance(other, (int, float)): return self._expr()._scale(float(other))
        return NotImplemented
    __rmul__ = __mul__

    def __truediv__(self, other):
        if isinstance(other, (int, float)): return self._expr()._scale(1.0 / float(other))
        return NotImplemented

    def __float__(self):
        raise TypeError(f"Cannot convert unbound {self!r} to float")


class Parameter(_Affine):
    """Named symbolic parameter."""
    __slots__ = ('name', 'trainable')
    def __init__(self, name: str, trainable: bool = True):
        self.name = name
        self.trainable = trainable
    def __repr__(self): return f"Parameter({self.name!r})"
    def __eq__(self, other): return isinstance(other, Parameter) and self.name == other.name
    def __hash__(self): return hash(('Parameter', self.name))
    def _expr(self) -> ParameterExpression: return ParameterExpression({self: 1.0})
    @property
    def parameters(self) -> set[Parameter]: return {self}
    def bind(self, values: dict[str, float]):
        return float(values[self.name]) if self.name in values else self


class ParameterExpression(_Affine):
    """sum(coeff * param) + const. Produced by arithmetic on Parameters."""
    __slots__ = ('coeffs', 'const')

    def __init__(self, coeffs: dict[Parameter, float], const: float = 0.0):
        self.coeffs = {p: c for p, c in coeffs.items() if c != 0.0}
        self.const = float(const)

    def _expr(self) -> ParameterExpression: return self

    def _scale(self, k: float) -> ParameterExpression:
        return ParameterExpression({p: c * k for p, c in self.coeffs.items()}, self.const * k)

    def _combine(self, other, sign: float):
        if isinstance(other, (int, float, np.floating)):
            return ParameterExpression(dict(self.coeffs), self.const + sign * float(other))
        if not isinstance(other, _Affine):
            return NotImplemented
        other = other._expr()
        coeffs = dict(self.coeffs)
        for p, c in other.coeffs.items():
            coeffs[p] = coeffs.get(p, 0.0) + sign * c
        return ParameterExpression(coeffs, self.const + sign * other.const)

    @property
    def parameters(self) -> set[Parameter]: return set(self.coeffs)

    def bind(self, values: dict[str, float]):
        """Substitute known values. Returns a float once every parameter is bound."""
        const, rest = self.const, {}
        for p, c in self.coeffs.items():
            if p.name in values: const += c * float(values[p.name])
            else: rest[p] = c
        return ParameterExpression(rest, const) if rest else const

    def __eq__(self, other):
        return (isinstance(other, ParameterExpression) and self.coeffs == other.coeffs
                and self.const == other.const)

    def __hash__(self): return hash((frozenset(self.coeffs.items()), self.const))

    def __repr__(self):
        terms = [f"{c:g}*{p.name}" for p, c in sorted(self.coeffs.items(), key=lambda kv: kv[0].name)]
        if self.const or not terms: terms.append(f"{self.const:g}")
        return " + ".join(terms)


def is_symbolic(p) -> bool:
    return isinstance(p, (Parameter, ParameterExpression))


def _has_parameter(params: tuple) -> bool:
    """Check if any param is symbolic."""
    return any(is_symbolic(p) for p in params)


@dataclass(frozen=True)
class Operation:
    gate: Gate
    qubits: tuple[int, ...]
    params: tuple = ()
    clbits: tuple[int, ...] = ()
    condition: tuple[int, int] | None = None  # (classical_bit, expected_value)

    def __post_init__(self):
        if isinstance(self.gate, str): object.__setattr__(self, 'gate', gate_by_name(self.gate))
        if not isinstance(self.qubits, tuple): object.__setattr__(self, 'qubits', tuple(self.qubits))
        if not isinstance(self.params, tuple): object.__setattr__(self, 'params', tuple(self.params))
        if not isinstance(self.clbits, tuple): object.__setattr__(self, 'clbits', tuple(self.clbits))

    @property
    def name(self) -> str: return self.gate.name

    @property
    def is_parameterized(self) -> bool: return _has_parameter(self.params)

    def replace(self, **changes) -> Operation:
        fields = dict(gate=self.gate, qubits=self.qubits, params=self.params,
                      clbits=self.clbits, condition=self.condition)
        fields.update(changes)
        return Operation(**fields)

    def __repr__(self):
        ps = f"({', '.join(f'{p:.4g}' if isinstance(p, float) else repr(p) for p in self.params)})" if self.params else ""
        cs = f" -> c{list(self.clbits)}" if self.clbits else ""
        cond = f" if c{self.condition[0]}=={self.condition[1]}" if self.condition else ""
        return f"{self.gate.name}{ps} q{list(self.qubits)}{cs}{cond}"


class _ConditionalContext:
    """Context manager for c_if conditional blocks."""
    def __init__(self, circuit: Circuit, classical_bit: int, value: int):
        self._circuit = circuit
        self._classical_bit = classical_bit
        self._value = value

    def __enter__(self):
        self._circuit._current_condition = (self._classical_bit, self._value)
        return self

    def __exit__(self, *args):
        self._circuit._current_condition = None


class Circuit:
    """Lazy circuit builder. Adds operations to a list."""

    def __init__(self, n_qubits: int, n_classical: int | None = None):
        self.n_qubits = n_qubits
        self.n_classical = n_classical if n_classical is not None else n_qubits
        self.ops: list[Operation] = []
        self.layout: TranspileLayout | None = None
        self.op_start_times: list[float] | None = None
        self._current_condition: tuple[int, int] | None = None

    def __len__(self) -> int: return len(self.ops)
    def __iter__(self): return iter(self.ops)

    def _add(self, gate: Gate, qubits: tuple, params: tuple = (), clbits: tuple = ()) -> Circuit:
        self.ops.append(Operation(gate, qubits, params, clbits, self._current_condition))
        return self

    def append(self, gate: Gate | str, qubits, params=(), clbits=()) -> Circuit:
        """Append any registered gate, including user-defined ones."""
        return self._add(gate_by_name(gate) if isinstance(gate, str) else gate, tuple(qubits), tuple(params), tuple(clbits))

    def id(self, q: int) -> Circuit: return self._add(Gate.ID, (q,))
    def x(self, q: int) -> Circuit: return self._add(Gate.X, (q,))
    def y(self, q: int) -> Circuit: return self._add(Gate.Y, (q,))
    def z(self, q: int) -> Circuit: return self._add(Gate.Z, (q,))
    def h(self, q: int) -> Circuit: return self._add(Gate.H, (q,))
    def s(self, q: int) -> Circuit: return self._add(Gate.S, (q,))
    def t(self, q: int) -> Circuit: return self._add(Gate.T, (q,))
    def sdg(self, q: int) -> Circuit: return self._add(Gate.SDG, (q,))
    def tdg(self, q: int) -> Circuit: return self._add(Gate.TDG, (q,))
    def sx(self, q: int) -> Circuit: return self._add(Gate.SX, (q,))
    def sxdg(self, q: int) -> Circuit: return self._add(Gate.SXDG, (q,))
    def rx(self, q: int, theta) -> Circuit: return self._add(Gate.RX, (q,), (theta,))
    def ry(self, q: int, theta) -> Circuit: return self._add(Gate.RY, (q,), (theta,))
    def rz(self, q: int, theta) -> Circuit: return self._add(Gate.RZ, (q,), (theta,))
    def p(self, q: int, lam) -> Circuit: return self._add(Gate.P, (q,), (lam,))
    def u(self, q: int, theta, phi, lam) -> Circuit: return self._add(Gate.U, (q,), (theta, phi, lam))
    def cx(self, c: int, t: int) -> Circuit: return self._add(Gate.CX, (c, t))
    def cy(self, c: int, t: int) -> Circuit: return self._add(Gate.CY, (c, t))
    def cz(self, a: int, b: int) -> Circuit: return self._add(Gate.CZ, (a, b))
    def cp(self, c: int, t: int, theta) -> Circuit: return self._add(Gate.CP, (c, t), (theta,))
    def swap(self, a: int, b: int) -> Circuit: return self._add(Gate.SWAP, (a, b))
    def ecr(self, q0: int, q1: int) -> Circuit: return self._add(Gate.ECR, (q0, q1))
    def rzz(self, q0: int, q1: int, theta) -> Circuit: return self._add(Gate.RZZ, (q0, q1), (theta,))
    def rxx(self, q0: int, q1: int, theta) -> Circuit: return self._add(Gate.RXX, (q0, q1), (theta,))
    def ccx(self, c1: int, c2: int, t: int) -> Circuit: return self._add(Gate.CCX, (c1, c2, t))
    def ccz(self, a: int, b: int, c: int) -> Circuit: return self._add(Gate.CCZ, (a, b, c))

    def measure(self, q: int, c: int | None = None) -> Circuit:
        """Measure qubit q, store result in classical bit c (defaults to q)."""
        return self._add(Gate.MEASURE, (q,), (), (c if c is not None else q,))

    def measure_all(self) -> Circuit:
        for q in range(self.n_qubits): self.measure(q)
        return self

    def reset(self, q: int) -> Circuit:
        """Reset qubit to |0>."""
        return self._add(Gate.RESET, (q,))

    def barrier(self, *qubits: int) -> Circuit:
        return self._add(Gate.BARRIER, qubits or tuple(range(self.n_qubits)))

    def c_if(self, classical_bit: int, value: int = 1) -> _ConditionalContext:
        """Context manager for conditional operations."""
        return _ConditionalContext(self, classical_bit, value)

    @property
    def parameters(self) -> set[Parameter]:
        """Return set of all unbound Parameters in the circuit."""
        return {p for op in self.ops for e in op.params if is_symbolic(e) for p in e.parameters}

    @property
    def is_parameterized(self) -> bool:
        return any(op.is_parameterized for op in self.ops)

    def bind(self, values: dict[str, float]) -> Circuit:
        """Return new Circuit with Parameters substituted. Missing params left unbound."""
        c = self.copy_empty()
        for op in self.ops:
            if op.is_parameterized:
                c.ops.append(op.replace(params=tuple(p.bind(values) if is_symbolic(p) else p for p in op.params)))
            else:
                c.ops.append(op)
        return c

    def copy_empty(self) -> Circuit:
        c = Circuit(self.n_qubits, self.n_classical)
        c.layout = self.layout
        return c

    def copy(self) -> Circuit:
        c = self.copy_empty()
        c.ops = list(self.ops)
        return c

    def count_ops(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for op in self.ops: counts[op.name] = counts.get(op.name, 0) + 1
        return counts

    def num_2q(self) -> int:
        return sum(1 for op in self.ops if len(op.qubits) == 2 and not op.gate.directive)

    def depth(self) -> int:
        free: dict[int, int] = {}
        for op in self.ops:
            wires = list(op.qubits) + [-1 - c for c in op.clbits]
            t = max((free.get(w, 0) for w in wires), default=0) + 1
            for w in wires: free[w] = t
        return max(free.values(), default=0)

    def to_unitary(self) -> np.ndarray:
        from .simulator import to_unitary
        return to_unitary(self)

    def __repr__(self):
        return f"Circuit(n_qubits={self.n_qubits}, ops={len(self.ops)})"
