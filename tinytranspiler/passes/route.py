"""
Qubit routing: insert SWAPs until every 2-qubit op acts on a coupled pair.

Contains:
    - SabreHeuristic: Tuning knobs of the SABRE router
    - BasicSwap: SWAP along the shortest path for every blocked op (no search)
    - SabreSwap: Front layer + lookahead + decay heuristic, seeded tie-breaking

Both passes run on a physical graph (after ApplyLayout). Physical positions are
tracked with a Layout that starts trivial; the result's final layout is the
initial one composed with the tracked permutation.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from ..dag import DAGCircuit
from ..exceptions import InfeasibleMappingError, UnsupportedOperationError, ValidationError
from ..gates import Gate
from ..ir import Operation
from ..layout import Layout
from ..passmanager import TransformationPass
from ..target import Target

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SabreHeuristic:
    lookahead_size: int = 20
    lookahead_weight: float = 0.5
    decay_delta: float = 0.001
    decay_reset: int = 5
    swap_budget_factor: int = 10


class _SwapBudgetExceeded(Exception):
    """Raised internally when SABRE inserts more SWAPs than its budget allows."""


def _needs_route(op: Operation) -> bool:
    if op.gate.directive or len(op.qubits) < 2:
        return False
    if len(op.qubits) > 2:
        raise UnsupportedOperationError(f"Cannot route {op.name} on {len(op.qubits)} qubits; unroll it first",
                                        operation=op)
    return True


def _physical(op: Operation, layout: Layout) -> tuple[int, ...]:
    return layout.get_physical_qubits(op.qubits)


def _unreachable(op: Operation, pa: int, pb: int) -> InfeasibleMappingError:
    return InfeasibleMappingError(f"No path between physical qubits {pa} and {pb} (disconnected coupling graph)",
                                  operation=op)


def _route_basic(dag: DAGCircuit, target: Target, layout: Layout, emit=None) -> int:
    """Walk ops in order; move the first qubit next to the second along a shortest path."""
    swaps = 0
    for op in dag.topological_ops():
        if _needs_route(op):
            pa, pb = _physical(op, layout)
            if not target.are_connected(pa, pb):
                path = target.shortest_path(pa, pb)
                if not path:
                    raise _unreachable(op, pa, pb)
                for a, b in zip(path, path[1:-1]):
                    if emit is not None: emit(Operation(Gate.SWAP, (a, b)))
                    layout.swap_physical(a, b)
                    swaps += 1
        if emit is not None:
            emit(op.replace(qubits=_physical(op, layout)))
    return swaps


def _route_sabre(dag: DAGCircuit, target: Target, layout: Layout, rng: random.Random,
                 heuristic: SabreHeuristic = SabreHeuristic(), emit=None) -> int:
    """SABRE routing. Mutates ``layout`` to the final placement and returns the SWAP count.

    ``emit`` receives every output op (physical indices) in order; pass None to
    only count SWAPs, as layout trials do.
    """
    n = target.n_qubits
    dist = target.all_pairs_distances()
    order = dag.topological_order()
    index = {nid: i for i, nid in enumerate(order)}
    in_deg = {nid: len(dag.predecessors(nid)) for nid in order}
    front = [nid for nid in order if in_deg[nid] == 0]
    decay = [1.0] * n
    budget = heuristic.swap_budget_factor * n * (dag.num_2q() + 1)
    max_stalled = 10 * n
    swaps = stalled = since_reset = 0

    def executable(nid: int) -> bool:
        op = dag.op(nid)
        return not _needs_route(op) or target.are_connected(*_physical(op, layout))

    def apply_swap(a: int, b: int):
        nonlocal swaps
        if emit is not None: emit(Operation(Gate.SWAP, (a, b)))
        layout.swap_physical(a, b)
        swaps += 1

    def extended_set() -> list[int]:
        ext: list[int] = []
        seen = set(front)
        queue = list(front)
        while queue and len(ext) < heuristic.lookahead_size:
            nxt: list[int] = []
            for nid in queue:
                for s in dag.successors(nid):
                    if s in seen: continue
                    seen.add(s)
                    nxt.append(s)
                    if _needs_route(dag.op(s)):
                        ext.append(s)
                        if len(ext) >= heuristic.lookahead_size: return ext
            queue = nxt
        return ext

    while front:
        ready = [nid for nid in front if executable(nid)]
        if ready:
            for nid in ready:
                op = dag.op(nid)
                if emit is not None: emit(op.replace(qubits=_physical(op, layout)))
                front.remove(nid)
                for s in dag.successors(nid):
                    in_deg[s] -= 1
                    if in_deg[s] == 0: front.append(s)
            front.sort(key=index.__getitem__)
            stalled = 0
            decay = [1.0] * n
            continue

        if swaps >= budget:
            raise _SwapBudgetExceeded(f"{swaps} swaps")
        blocked = [(nid, _physical(dag.op(nid), layout)) for nid in front]
        for nid, (pa, pb) in blocked:
            if dist[pa][pb] < 0:
                raise _unreachable(dag.op(nid), pa, pb)

        if stalled >= max_stalled:
            # Release valve: bring the closest blocked pair together along a shortest path
            nid, (pa, pb) = min(blocked, key=lambda item: (dist[item[1][0]][item[1][1]], index[item[0]]))
            logger.debug("SABRE release valve after %d swaps without progress", stalled)
            path = target.shortest_path(pa, pb)
            for a, b in zip(path, path[1:-1]):
                apply_swap(a, b)
            stalled = 0
            continue

        ext = [_physical(dag.op(nid), layout) for nid in extended_set()]
        candidates = sorted({(min(p, nb), max(p, nb)) for _, pair in blocked for p in pair
                             for nb in target.neighbors(p)})

        def score(swap: tuple[int, int]) -> float:
            a, b = swap
            s = lambda p: b if p == a else a if p == b else p
            front_cost = sum(dist[s(x)][s(y)] for _, (x, y) in blocked) / len(blocked)
            ext_cost = sum(dist[s(x)][s(y)] for x, y in ext) / len(ext) if ext else 0.0
            return max(decay[a], decay[b]) * (front_cost + heuristic.lookahead_weight * ext_cost)

        scored = [(score(c), c) for c in candidates]
        best = min(sc for sc, _ in scored)
        a, b = rng.choice([c for sc, c in scored if sc - best < 1e-10])
        apply_swap(a, b)
        stalled += 1
        since_reset += 1
        if since_reset % heuristic.decay_reset == 0:
            decay = [1.0] * n
        else:
            decay[a] += heuristic.decay_delta
            decay[b] += heuristic.decay_delta
    return swaps


class _RoutingPass(TransformationPass):
    """Shared plumbing: widen to the target, track positions, record the final layout."""

    def __init__(self, target: Target):
        super().__init__()
        self.target = target

    def _route(self, dag: DAGCircuit, emit) -> tuple[int, Layout]:
        raise NotImplementedError

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        n = self.target.n_qubits
        if dag.n_qubits > n:
            raise ValidationError(f"Circuit has {dag.n_qubits} qubits but target has {n}")
        out = dag.copy_empty_like(n_qubits=n)
        initial = dag.metadata.get("initial_layout")
        if initial is None:
            initial = Layout.trivial(n)
        before = dag.metadata.get("final_layout")
        if before is None:
            before = initial
        swaps, track = self._route(dag, out.add_op)
        out.metadata["initial_layout"] = initial
        out.metadata["final_layout"] = before.compose_physical(track.to_list())
        out.metadata["routing_swaps"] = swaps
        logger.info("%s inserted %d swap(s)", self.name, swaps)
        return out


class BasicSwap(_RoutingPass):
    """Level-0 router: fix each blocked op with SWAPs along a shortest path."""

    def _route(self, dag, emit):
        track = Layout.trivial(self.target.n_qubits)
        return _route_basic(dag, self.target, track, emit), track


class SabreSwap(_RoutingPass):
    """SABRE router (Li, Ding, Xie 2019) with seeded tie-breaking.

    Falls back to BasicSwap when the SWAP budget runs out. The seed comes from
    the constructor or, when None, from ``property_set["seed"]``.
    """

    def __init__(self, target: Target, seed: int | None = None, heuristic: SabreHeuristic | None = None):
        super().__init__(target)
        self.seed = seed
        self.heuristic = heuristic or SabreHeuristic()

    def _route(self, dag, emit):
        seed = self.seed if self.seed is not None else self.property_set["seed"]
        track = Layout.trivial(self.target.n_qubits)
        emitted: list[Operation] = []
        try:
            swaps = _route_sabre(dag, self.target, track, random.Random(seed), self.heuristic, emitted.append)
        except _SwapBudgetExceeded as exc:
            logger.warning("SabreSwap exceeded its swap budget (%s); falling back to BasicSwap", exc)
            track = Layout.trivial(self.target.n_qubits)
            return _route_basic(dag, self.target, track, emit), track
        for op in emitted: emit(op)
        return swaps, track
