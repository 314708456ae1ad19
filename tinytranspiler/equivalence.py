"""
Gate equivalence library.

Contains:
    - Equivalence: One decomposition rule  rule(qubits, params) -> list[Operation]
    - EquivalenceLibrary: name -> rules, plus direction-flip rules; layers on a base library
    - STANDARD_EQUIVALENCES: Frozen default library
    - search_basis(): Cheapest rule per gate for a basis (Knuth's generalisation of Dijkstra)

Standard decompositions (all correct up to global phase):
    - SWAP -> CX CX CX,  CZ -> H CX H,  CX -> H CZ H,  CX -> ECR + 1Q
    - H -> RZ(π/2) SX RZ(π/2) | RZ(π/2) RX(π/2) RZ(π/2) | RY(π/2) X
    - S -> RZ(π/2), T -> RZ(π/4), X -> RX(π) | SX SX, Z -> RZ(π)
    - RX -> H RZ(θ) H,  RY -> RX(π/2) RZ(θ) RX(-π/2),  U -> RZ RY RZ | RZ SX RZ SX RZ
    - CP(θ) -> RZ(θ/2)_c · CX · RZ(-θ/2)_t · CX · RZ(θ/2)_t
Rules are listed in circuit order (first element applied first).
"""
from __future__ import annotations

import heapq
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from math import pi
from typing import Callable

from .exceptions import ValidationError
from .gates import Gate, gate_by_name, DIRECTIVES
from .ir import Operation

Rule = Callable[[tuple, tuple], list[Operation]]

_PROBE_PARAMS = (0.3141, 0.2718, 0.1618)


@dataclass(frozen=True)
class Equivalence:
    name: str
    rule: Rule = field(compare=False)
    produces: tuple[tuple[str, int], ...]  # (gate name, count)

    @property
    def size(self) -> int: return sum(c for _, c in self.produces)

    def expand(self, qubits: tuple, params: tuple) -> list[Operation]:
        return self.rule(tuple(qubits), tuple(params))


class EquivalenceLibrary:
    """Decomposition rules keyed by gate name. Own rules are preferred over the base's."""

    def __init__(self, base: EquivalenceLibrary | None = None):
        self._base = base
        self._rules: dict[str, list[Equivalence]] = {}
        self._flips: dict[str, Rule] = {}
        self._frozen = False
        self.version = 0

    def _check_mutable(self):
        if self._frozen:
            raise ValidationError("Equivalence library is frozen; layer a new one with base=...")

    def add_equivalence(self, name: str, rule: Rule) -> Equivalence:
        """Register rule(qubits, params) -> ops implementing ``name``."""
        self._check_mutable()
        g = gate_by_name(name)
        probe = rule(tuple(range(g.n_qubits)), _PROBE_PARAMS[:g.n_params])
        for op in probe:
            if any(q >= g.n_qubits for q in op.qubits):
                raise ValidationError(f"Rule for {name} uses qubits outside its operands", operation=op)
        eq = Equivalence(name, rule, tuple(sorted(Counter(op.name for op in probe).items())))
        self._rules.setdefault(name, []).append(eq)
        self.version += 1
        return eq

    def add_flip(self, name: str, rule: Rule):
        """Register rule((a, b), params) -> ops implementing name(a, b) with name applied as (b, a)."""
        self._check_mutable()
        self._flips[name] = rule
        self.version += 1

    def get_equivalences(self, name: str) -> list[Equivalence]:
        own = self._rules.get(name, [])
        return own + (self._base.get_equivalences(name) if self._base is not None else [])

    def get_flip(self, name: str) -> Rule | None:
        if name in self._flips: return self._flips[name]
        return self._base.get_flip(name) if self._base is not None else None

    def has_rule(self, name: str) -> bool:
        return bool(self.get_equivalences(name))

    def names(self) -> set[str]:
        own = set(self._rules)
        return own | self._base.names() if self._base is not None else own

    @property
    def frozen(self) -> bool: return self._frozen

    def freeze(self) -> EquivalenceLibrary:
        self._frozen = True
        return self

    def _state(self) -> tuple:
        return (id(self), self.version) + (self._base._state() if self._base is not None else ())


# Shortest-path search -----------------------------------------------------------

@lru_cache(maxsize=128)
def _search(library: EquivalenceLibrary, state: tuple, basis: frozenset[str]) -> dict[str, tuple[int, Equivalence | None]]:
    cost: dict[str, int] = {}
    best: dict[str, tuple[int, Equivalence | None]] = {}
    heap: list[tuple[int, int, str, Equivalence | None]] = []
    tie = 0
    for b in sorted(basis | DIRECTIVES):
        heap.append((1 if b in basis else 0, tie, b, None)); tie += 1
    heapq.heapify(heap)

    # rule -> number of distinct produced names not yet settled
    pending: dict[int, int] = {}
    waiting: dict[str, list[Equivalence]] = {}
    rules = [eq for name in sorted(library.names()) for eq in library.get_equivalences(name)]
    for eq in rules:
        names = {n for n, _ in eq.produces}
        pending[id(eq)] = len(names)
        if not names:
            heapq.heappush(heap, (0, tie, eq.name, eq)); tie += 1
        for n in names: waiting.setdefault(n, []).append(eq)

    while heap:
        c, _, name, eq = heapq.heappop(heap)
        if name in cost: continue
        cost[name] = c
        best[name] = (c, eq)
        for dep in waiting.get(name, ()):
            pending[id(dep)] -= 1
            if pending[id(dep)] == 0 and dep.name not in cost:
                total = sum(cost[n] * k for n, k in dep.produces)
                heapq.heappush(heap, (total, tie, dep.name, dep)); tie += 1
    return best


def search_basis(library: EquivalenceLibrary, basis: frozenset[str]) -> dict[str, tuple[int, Equivalence | None]]:
    """Cheapest known route to ``basis`` for every reachable gate.

    Returns name -> (number of basis operations, rule or None for basis gates).
    Gates missing from the result cannot be expressed in the basis.
    """
    return _search(library, library._state(), frozenset(basis))


# Standard library ---------------------------------------------------------------

def _o(gate: Gate, qubits: tuple, params: tuple = ()) -> Operation:
    return Operation(gate, qubits, params)


def _ccx(c1, c2, t) -> list[Operation]:
    """CCX (Toffoli) = 6 CX + 2H + 4T + 3Tdg = 15 gates (Nielsen & Chuang)."""
    return [
        _o(Gate.H, (t,)),
        _o(Gate.CX, (c2, t)), _o(Gate.TDG, (t,)),
        _o(Gate.CX, (c1, t)), _o(Gate.T, (t,)),
        _o(Gate.CX, (c2, t)), _o(Gate.TDG, (t,)),
        _o(Gate.CX, (c1, t)),
        _o(Gate.T, (c2,)), _o(Gate.T, (t,)),
        _o(Gate.CX, (c1, c2)), _o(Gate.H, (t,)),
        _o(Gate.T, (c1,)), _o(Gate.TDG, (c2,)),
        _o(Gate.CX, (c1, c2)),
    ]


def _ccz(a, b, c) -> list[Operation]:
    """CCZ = 6 CX + 4T + 3Tdg = 13 gates (CCX core without H sandwich)."""
    return [
        _o(Gate.CX, (b, c)), _o(Gate.TDG, (c,)),
        _o(Gate.CX, (a, c)), _o(Gate.T, (c,)),
        _o(Gate.CX, (b, c)), _o(Gate.TDG, (c,)),
        _o(Gate.CX, (a, c)),
        _o(Gate.T, (b,)), _o(Gate.T, (c,)),
        _o(Gate.CX, (a, b)),
        _o(Gate.T, (a,)), _o(Gate.TDG, (b,)),
        _o(Gate.CX, (a, b)),
    ]


def _zsx(q, theta, phi, lam) -> list[Operation]:
    """U(θ,φ,λ) ∝ RZ(φ+π) · SX · RZ(θ+π) · SX · RZ(λ)."""
    return [_o(Gate.RZ, (q,), (lam,)), _o(Gate.SX, (q,)), _o(Gate.RZ, (q,), (theta + pi,)),
            _o(Gate.SX, (q,)), _o(Gate.RZ, (q,), (phi + pi,))]


# (gate name, rule(qubits, params)) in preference order
_STANDARD_RULES: list[tuple[str, Rule]] = [
    ("id", lambda qs, ps: []),
    ("x", lambda qs, ps: [_o(Gate.RX, qs, (pi,))]),
    ("x", lambda qs, ps: [_o(Gate.SX, qs), _o(Gate.SX, qs)]),
    ("x", lambda qs, ps: [_o(Gate.U, qs, (pi, 0.0, pi))]),
    ("y", lambda qs, ps: [_o(Gate.RZ, qs, (pi,)), _o(Gate.X, qs)]),
    ("y", lambda qs, ps: [_o(Gate.RY, qs, (pi,))]),
    ("z", lambda qs, ps: [_o(Gate.RZ, qs, (pi,))]),
    ("z", lambda qs, ps: [_o(Gate.P, qs, (pi,))]),
    ("h", lambda qs, ps: [_o(Gate.RZ, qs, (pi/2,)), _o(Gate.SX, qs), _o(Gate.RZ, qs, (pi/2,))]),
    ("h", lambda qs, ps: [_o(Gate.RZ, qs, (pi/2,)), _o(Gate.RX, qs, (pi/2,)), _o(Gate.RZ, qs, (pi/2,))]),
    ("h", lambda qs, ps: [_o(Gate.RY, qs, (pi/2,)), _o(Gate.X, qs)]),
    ("h", lambda qs, ps: [_o(Gate.U, qs, (pi/2, 0.0, pi))]),
    ("s", lambda qs, ps: [_o(Gate.RZ, qs, (pi/2,))]),
    ("s", lambda qs, ps: [_o(Gate.P, qs, (pi/2,))]),
    ("sdg", lambda qs, ps: [_o(Gate.RZ, qs, (-pi/2,))]),
    ("sdg", lambda qs, ps: [_o(Gate.P, qs, (-pi/2,))]),
    ("t", lambda qs, ps: [_o(Gate.RZ, qs, (pi/4,))]),
    ("t", lambda qs, ps: [_o(Gate.P, qs, (pi/4,))]),
    ("tdg", lambda qs, ps: [_o(Gate.RZ, qs, (-pi/4,))]),
    ("tdg", lambda qs, ps: [_o(Gate.P, qs, (-pi/4,))]),
    ("sx", lambda qs, ps: [_o(Gate.RX, qs, (pi/2,))]),
    ("sx", lambda qs, ps: [_o(Gate.SDG, qs), _o(Gate.H, qs), _o(Gate.SDG, qs)]),
    ("sxdg", lambda qs, ps: [_o(Gate.RX, qs, (-pi/2,))]),
    ("sxdg", lambda qs, ps: [_o(Gate.S, qs), _o(Gate.H, qs), _o(Gate.S, qs)]),
    ("rx", lambda qs, ps: [_o(Gate.H, qs), _o(Gate.RZ, qs, ps), _o(Gate.H, qs)]),
    ("rx", lambda qs, ps: [_o(Gate.RZ, qs, (pi/2,)), _o(Gate.SX, qs), _o(Gate.RZ, qs, (ps[0] + pi,)),
                           _o(Gate.SX, qs), _o(Gate.RZ, qs, (pi/2,))]),
    ("ry", lambda qs, ps: [_o(Gate.RX, qs, (pi/2,)), _o(Gate.RZ, qs, ps), _o(Gate.RX, qs, (-pi/2,))]),
    ("ry", lambda qs, ps: [_o(Gate.SX, qs), _o(Gate.RZ, qs, ps), _o(Gate.SXDG, qs)]),
    ("ry", lambda qs, ps: [_o(Gate.U, qs, (ps[0], 0.0, 0.0))]),
    ("rz", lambda qs, ps: [_o(Gate.P, qs, ps)]),
    ("rz", lambda qs, ps: [_o(Gate.H, qs), _o(Gate.RX, qs, ps), _o(Gate.H, qs)]),
    ("rz", lambda qs, ps: [_o(Gate.RX, qs, (-pi/2,)), _o(Gate.RY, qs, ps), _o(Gate.RX, qs, (pi/2,))]),
    ("p", lambda qs, ps: [_o(Gate.RZ, qs, ps)]),
    ("p", lambda qs, ps: [_o(Gate.U, qs, (0.0, 0.0, ps[0]))]),
    ("u", lambda qs, ps: [_o(Gate.RZ, qs, (ps[2],)), _o(Gate.RY, qs, (ps[0],)), _o(Gate.RZ, qs, (ps[1],))]),
    ("u", lambda qs, ps: _zsx(qs[0], ps[0], ps[1], ps[2])),

    ("cx", lambda qs, ps: [_o(Gate.H, (qs[1],)), _o(Gate.CZ, qs), _o(Gate.H, (qs[1],))]),
    ("cx", lambda qs, ps: [_o(Gate.ECR, qs), _o(Gate.Y, (qs[0],)), _o(Gate.RZ, (qs[0],), (pi/2,)),
                           _o(Gate.RX, (qs[1],), (-pi/2,))]),
    ("cz", lambda qs, ps: [_o(Gate.H, (qs[1],)), _o(Gate.CX, qs), _o(Gate.H, (qs[1],))]),
    ("cz", lambda qs, ps: [_o(Gate.CP, qs, (pi,))]),
    ("cy", lambda qs, ps: [_o(Gate.SDG, (qs[1],)), _o(Gate.CX, qs), _o(Gate.S, (qs[1],))]),
    ("cp", lambda qs, ps: [_o(Gate.RZ, (qs[0],), (ps[0] / 2,)), _o(Gate.CX, qs), _o(Gate.RZ, (qs[1],), (-ps[0] / 2,)),
                           _o(Gate.CX, qs), _o(Gate.RZ, (qs[1],), (ps[0] / 2,))]),
    ("swap", lambda qs, ps: [_o(Gate.CX, qs), _o(Gate.CX, qs[::-1]), _o(Gate.CX, qs)]),
    ("ecr", lambda qs, ps: [_o(Gate.Z, (qs[0],)), _o(Gate.X, (qs[1],)), _o(Gate.CX, qs),
                            _o(Gate.RZ, (qs[0],), (-pi/2,)), _o(Gate.RX, (qs[1],), (-pi/2,)), _o(Gate.X, (qs[0],))]),
    ("rzz", lambda qs, ps: [_o(Gate.CX, qs), _o(Gate.RZ, (qs[1],), ps), _o(Gate.CX, qs)]),
    ("rxx", lambda qs, ps: [_o(Gate.H, (qs[0],)), _o(Gate.H, (qs[1],)), _o(Gate.RZZ, qs, ps),
                            _o(Gate.H, (qs[0],)), _o(Gate.H, (qs[1],))]),
    ("ccx", lambda qs, ps: _ccx(*qs)),
    ("ccz", lambda qs, ps: _ccz(*qs)),
    ("ccz", lambda qs, ps: [_o(Gate.H, (qs[2],)), _o(Gate.CCX, qs), _o(Gate.H, (qs[2],))]),
]


def _swap_operands(gate: Gate) -> Rule:
    return lambda qs, ps: [_o(gate, qs[::-1], ps)]


_STANDARD_FLIPS: list[tuple[str, Rule]] = [
    # CX(a,b) = H(a) H(b) CX(b,a) H(a) H(b)
    ("cx", lambda qs, ps: [_o(Gate.H, (qs[0],)), _o(Gate.H, (qs[1],)), _o(Gate.CX, qs[::-1]),
                           _o(Gate.H, (qs[0],)), _o(Gate.H, (qs[1],))]),
    # ECR(a,b) = X(a) · H⊗H · X(b) · ECR(b,a) · H⊗H
    ("ecr", lambda qs, ps: [_o(Gate.H, (qs[0],)), _o(Gate.H, (qs[1],)), _o(Gate.ECR, qs[::-1]),
                            _o(Gate.X, (qs[1],)), _o(Gate.H, (qs[0],)), _o(Gate.H, (qs[1],)), _o(Gate.X, (qs[0],))]),
    ("cz", _swap_operands(Gate.CZ)),
    ("cp", _swap_operands(Gate.CP)),
    ("swap", _swap_operands(Gate.SWAP)),
    ("rzz", _swap_operands(Gate.RZZ)),
    ("rxx", _swap_operands(Gate.RXX)),
]


def _build_standard() -> EquivalenceLibrary:
    lib = EquivalenceLibrary()
    for name, rule in _STANDARD_RULES: lib.add_equivalence(name, rule)
    for name, rule in _STANDARD_FLIPS: lib.add_flip(name, rule)
    return lib.freeze()


STANDARD_EQUIVALENCES = _build_standard()
