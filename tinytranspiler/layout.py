"""
Logical -> physical qubit mapping.

Contains:
    - Layout: Bijection over all physical qubits of a target. Logical indices
      beyond the circuit width are ancillas. Mutable until freeze().
    - TranspileLayout: (initial, final) pair attached to the output circuit
"""
from __future__ import annotations

from dataclasses import dataclass

from .exceptions import StructuralError, ValidationError


class Layout:
    """Track logical<->physical qubit assignment.

    Routing passes swap physical positions; the final layout records where
    each logical qubit ended up.
    """
    __slots__ = ('_l2p', '_p2l', '_frozen')

    def __init__(self, logical_to_physical: list[int]):
        l2p = list(logical_to_physical)
        if sorted(l2p) != list(range(len(l2p))):
            raise ValidationError(f"Layout {l2p} is not a permutation of 0..{len(l2p) - 1}")
        self._l2p = l2p
        self._p2l = [0] * len(l2p)
        for lq, pq in enumerate(l2p): self._p2l[pq] = lq
        self._frozen = False

    @classmethod
    def trivial(cls, n: int) -> Layout:
        return cls(list(range(n)))

    @classmethod
    def from_partial(cls, partial: list[int] | dict[int, int], n_physical: int) -> Layout:
        """Complete a mapping of the first logical qubits; ancillas take the free physical qubits in order."""
        items = dict(enumerate(partial)) if not isinstance(partial, dict) else dict(partial)
        used = set(items.values())
        if len(used) != len(items):
            raise ValidationError(f"Layout {partial} maps two logical qubits to one physical qubit")
        if any(not 0 <= p < n_physical for p in used):
            raise ValidationError(f"Layout {partial} uses physical qubits outside 0..{n_physical - 1}")
        n_logical = max(items, default=-1) + 1
        if any(lq not in items for lq in range(n_logical)):
            raise ValidationError(f"Layout {partial} skips logical qubits")
        free = iter(p for p in range(n_physical) if p not in used)
        return cls([items[lq] if lq in items else next(free) for lq in range(n_physical)])

    def __len__(self) -> int: return len(self._l2p)
    def __eq__(self, other): return isinstance(other, Layout) and self._l2p == other._l2p
    def __hash__(self): return hash(tuple(self._l2p))
    def __repr__(self): return f"Layout({self._l2p})"

    @property
    def frozen(self) -> bool: return self._frozen

    def logical_to_phys(self, logical: int) -> int:
        """Get physical location of a logical qubit."""
        return self._l2p[logical]

    def phys_to_logical(self, physical: int) -> int:
        """Get logical qubit at a physical location."""
        return self._p2l[physical]

    def get_physical_qubits(self, logical_qubits) -> tuple[int, ...]:
        return tuple(self._l2p[q] for q in logical_qubits)

    def to_list(self) -> list[int]:
        return list(self._l2p)

    def to_dict(self, n_logical: int | None = None) -> dict[int, int]:
        n = len(self._l2p) if n_logical is None else n_logical
        return {lq: self._l2p[lq] for lq in range(n)}

    def swap_physical(self, phys_a: int, phys_b: int):
        """Exchange the logical qubits sitting on two physical qubits."""
        if self._frozen:
            raise StructuralError("Layout is frozen")
        n = len(self._l2p)
        if not (0 <= phys_a < n and 0 <= phys_b < n):
            raise ValidationError(f"Invalid physical qubit index: ({phys_a}, {phys_b}) for {n}-qubit layout")
        if phys_a == phys_b:
            return
        log_a, log_b = self._p2l[phys_a], self._p2l[phys_b]
        self._l2p[log_a], self._l2p[log_b] = phys_b, phys_a
        self._p2l[phys_a], self._p2l[phys_b] = log_b, log_a

    def compose_physical(self, perm: list[int]) -> Layout:
        """New layout with every physical qubit p relabelled to perm[p]."""
        return Layout([perm[p] for p in self._l2p])

    def copy(self) -> Layout:
        return Layout(self._l2p)

    def freeze(self) -> Layout:
        self._frozen = True
        return self


@dataclass(frozen=True)
class TranspileLayout:
    """Where logical qubits start and where they end after routing."""
    initial: Layout
    final: Layout
    n_logical: int

    def initial_physical(self) -> list[int]:
        return [self.initial.logical_to_phys(q) for q in range(self.n_logical)]

    def final_physical(self) -> list[int]:
        return [self.final.logical_to_phys(q) for q in range(self.n_logical)]

    def routing_permutation(self) -> list[int]:
        """perm[p] = physical qubit that holds, at the end, the state that started on p."""
        return [self.final.logical_to_phys(self.initial.phys_to_logical(p)) for p in range(len(self.initial))]
