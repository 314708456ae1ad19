"""
Hardware target definitions.

Contains:
    - InstructionProperties: Calibration data (duration, error) of one instruction
    - Target: Hardware description (n_qubits, edges, basis_gates, properties)
    - Helper methods: are_connected, shortest_path, distance, all_pairs_distances, supports

Note: Routing always treats couplers as undirected (both directions valid for
adjacency). A coupler only counts when some 2Q basis instruction may run on it,
so with calibration data present an uncalibrated edge is ignored. When
directed=True, or when a 2Q calibration is listed for one ordering only, the
GateDirection pass flips reversed instructions.

A Target is never mutated after construction; the cached distance tables are
filled lazily and are identical for every reader, so a single instance can be
shared by concurrent transpilations.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from collections import deque

from .exceptions import ValidationError
from .gates import Gate, DIRECTIVES, GATES


@dataclass(frozen=True)
class InstructionProperties:
    duration: float | None = None  # seconds
    error: float | None = None


def _names(basis) -> frozenset[str]:
    return frozenset(g.name if isinstance(g, Gate) else str(g) for g in basis)


@dataclass
class Target:
    """Describes quantum hardware constraints.

    ``properties`` maps an instruction name to {physical qubit tuple: InstructionProperties}.
    An instruction listed there is only supported on the listed tuples.
    """
    n_qubits: int
    edges: frozenset[tuple[int, int]]
    basis_gates: frozenset[str]
    name: str = ""
    directed: bool = False
    properties: dict[str, dict[tuple[int, ...], InstructionProperties]] = field(default_factory=dict)
    dt: float | None = None
    _adj: dict[int, list[int]] = field(default_factory=dict, repr=False, compare=False)
    _dist: dict[tuple[int, int], int] = field(default_factory=dict, repr=False, compare=False)
    _all_pairs: list[list[int]] | None = field(default=None, repr=False, compare=False)
    _coupling: frozenset[tuple[int, int]] = field(default=frozenset(), repr=False, compare=False)

    def __post_init__(self):
        if self.n_qubits < 1:
            raise ValidationError(f"Target needs at least one qubit, got {self.n_qubits}")
        object.__setattr__(self, 'edges', frozenset(tuple(e) for e in self.edges))
        object.__setattr__(self, 'basis_gates', _names(self.basis_gates))
        for a, b in self.edges:
            if not (0 <= a < self.n_qubits and 0 <= b < self.n_qubits):
                raise ValidationError(f"Edge ({a},{b}) has invalid qubit index for {self.n_qubits}-qubit target")
            if a == b:
                raise ValidationError(f"Self-loop ({a},{a}) not allowed")
        for name in self.basis_gates:
            if name not in GATES:
                raise ValidationError(f"Basis gate {name!r} is not a registered gate")
        props = {}
        for name, by_qubits in self.properties.items():
            props[name] = {tuple(qs): (p if isinstance(p, InstructionProperties) else InstructionProperties(*p))
                           for qs, p in by_qubits.items()}
            for qs in props[name]:
                if any(not 0 <= q < self.n_qubits for q in qs):
                    raise ValidationError(f"Calibration {name}{qs} has invalid qubit index")
        object.__setattr__(self, 'properties', props)

        # a coupler only counts when some 2Q basis instruction may run on it
        two_q = self._two_q_basis()
        coupling = self.edges
        if any(self.properties.get(name) for name in two_q):
            coupling = frozenset(e for e in self.edges
                                 if any(self.supports(name, e) or self.supports(name, e[::-1]) for name in two_q))
        object.__setattr__(self, '_coupling', coupling)

        # sorted neighbour lists keep BFS and routing deterministic
        adj: dict[int, list[int]] = {i: [] for i in range(self.n_qubits)}
        for a, b in coupling:
            adj[a].append(b)
            adj[b].append(a)
        object.__setattr__(self, '_adj', {k: sorted(set(v)) for k, v in adj.items()})
        object.__setattr__(self, '_dist', {})

    def __hash__(self):
        return hash((self.n_qubits, self.edges, self.basis_gates, self.directed))

    # Connectivity --------------------------------------------------------------

    def _two_q_basis(self) -> list[str]:
        return sorted(name for name in self.basis_gates if GATES[name].n_qubits == 2)

    def are_connected(self, q0: int, q1: int) -> bool:
        """Check if two qubits share a usable coupler (either direction).

        When 2Q basis instructions carry calibration data, an edge none of them
        is calibrated on does not count.
        """
        return (q0, q1) in self._coupling or (q1, q0) in self._coupling

    def has_edge(self, q0: int, q1: int) -> bool:
        """Check that a 2Q instruction may run with q0 first. Direction-aware when directed."""
        return (q0, q1) in self.edges if self.directed else self.are_connected(q0, q1)

    def neighbors(self, qubit: int) -> list[int]:
        """Coupled qubits of ``qubit`` in ascending order."""
        return self._adj[qubit]

    def undirected_edges(self) -> list[tuple[int, int]]:
        return sorted({(min(a, b), max(a, b)) for a, b in self._coupling})

    def distance(self, q0: int, q1: int) -> int:
        """Number of couplers on the shortest path; -1 when disconnected."""
        if q0 == q1: return 0
        key = (min(q0, q1), max(q0, q1))
        if key not in self._dist:
            path = self.shortest_path(q0, q1)
            self._dist[key] = len(path) - 1 if path else -1
        return self._dist[key]

    def shortest_path(self, q0: int, q1: int) -> list[int]:
        """BFS path from q0 to q1 inclusive, lowest-numbered neighbours first; [] if there is none."""
        if q0 == q1: return [q0]
        if self.are_connected(q0, q1): return [q0, q1]

        prev: dict[int, int | None] = {q0: None}
        queue = deque([q0])

        while queue:
            current = queue.popleft()
            for neighbor in self._adj[current]:
                if neighbor in prev: continue
                prev[neighbor] = current
                if neighbor == q1:
                    path, node = [], q1
                    while node is not None:
                        path.append(node)
                        node = prev[node]
                    return path[::-1]
                queue.append(neighbor)
        return []

    def is_all_to_all(self) -> bool:
        """True when every pair of qubits shares a coupler."""
        expected = self.n_qubits * (self.n_qubits - 1) // 2
        return len(self.undirected_edges()) >= expected

    def is_connected(self) -> bool:
        """True if the coupling graph has a single component."""
        if self.n_qubits == 1: return True
        return all(d >= 0 for d in self.all_pairs_distances()[0])

    def all_pairs_distances(self) -> list[list[int]]:
        """All-pairs shortest path distances, one BFS per qubit. Cached. -1 if unreachable."""
        if self._all_pairs is not None:
            return self._all_pairs
        n = self.n_qubits
        dist = [[-1] * n for _ in range(n)]
        for src in range(n):
            row = dist[src]
            row[src] = 0
            queue = deque([src])
            while queue:
                cur = queue.popleft()
                for nb in self._adj[cur]:
                    if row[nb] < 0:
                        row[nb] = row[cur] + 1
                        queue.append(nb)
        object.__setattr__(self, '_all_pairs', dist)
        return dist

    # Instructions --------------------------------------------------------------

    def supports(self, name: str, qubits: tuple[int, ...]) -> bool:
        """Can the instruction run on these physical qubits?"""
        if name in DIRECTIVES:
            return True
        if name not in self.basis_gates:
            return False
        calibrated = self.properties.get(name)
        if calibrated:
            return tuple(qubits) in calibrated
        if len(qubits) == 2:
            return self.has_edge(*qubits)
        return len(qubits) == 1

    def has_calibration(self, name: str, qubits: tuple[int, ...]) -> bool:
        return tuple(qubits) in self.properties.get(name, {})

    def instruction_properties(self, name: str, qubits: tuple[int, ...]) -> InstructionProperties | None:
        return self.properties.get(name, {}).get(tuple(qubits))

    def duration(self, name: str, qubits: tuple[int, ...]) -> float | None:
        props = self.instruction_properties(name, qubits)
        return props.duration if props is not None else None

    def error(self, name: str, qubits: tuple[int, ...]) -> float | None:
        props = self.instruction_properties(name, qubits)
        return props.error if props is not None else None

    def two_qubit_supported(self, q0: int, q1: int) -> bool:
        """Some 2Q basis instruction runs on (q0, q1) in this order."""
        return any(self.supports(name, (q0, q1)) for name in self._two_q_basis())

    @property
    def has_one_way_couplers(self) -> bool:
        """Some 2Q basis instruction is supported on a coupler in one direction only."""
        return any(self.supports(name, (a, b)) != self.supports(name, (b, a))
                   for a, b in self._coupling for name in self._two_q_basis())

    def two_qubit_error(self, q0: int, q1: int) -> float:
        """Mean calibrated error of the 2Q basis instructions on this pair (either direction).

        Infinite for a pair without a usable coupler; 0.0 when nothing on it is calibrated.
        """
        if not self.are_connected(q0, q1):
            return float("inf")
        errs = [p.error for name in self.basis_gates if GATES[name].n_qubits == 2
                for qs in ((q0, q1), (q1, q0)) if (p := self.instruction_properties(name, qs)) is not None
                and p.error is not None]
        return sum(errs) / len(errs) if errs else 0.0

    edge_error = two_qubit_error

    def qubit_error(self, q: int) -> float:
        """Mean calibrated error of 1Q basis instructions plus readout error on this qubit.

        Infinite when a calibrated 1Q basis instruction has no entry for the qubit.
        """
        one_q = [name for name in self.basis_gates if GATES[name].n_qubits == 1]
        if any(self.properties.get(name) and (q,) not in self.properties[name] for name in one_q):
            return float("inf")
        errs = [p.error for name in self.basis_gates if GATES[name].n_qubits == 1
                if (p := self.instruction_properties(name, (q,))) is not None and p.error is not None]
        gate_err = sum(errs) / len(errs) if errs else 0.0
        meas = self.error("measure", (q,)) or 0.0
        return gate_err + meas

    @property
    def has_error_data(self) -> bool:
        return any(p.error for by_q in self.properties.values() for p in by_q.values())


def validate(circuit, target: Target) -> list[str]:
    """Problems that make ``circuit`` unrunnable on ``target``; an empty list means it is legal."""
    errors = []
    if circuit.n_qubits > target.n_qubits:
        errors.append(f"Circuit has {circuit.n_qubits} qubits but target has {target.n_qubits}")
    basis_names = ", ".join(sorted(target.basis_gates))
    for op in circuit.ops:
        if op.gate.directive:
            continue
        if op.name not in target.basis_gates:
            errors.append(f"Gate {op.name} on qubits {op.qubits} not in target basis {{{basis_names}}}")
        elif not target.supports(op.name, op.qubits):
            errors.append(f"Gate {op.name}{op.qubits} not supported on these qubits")
    return errors
