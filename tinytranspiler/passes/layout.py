"""
Initial qubit layout selection and application.

Contains:
    - TrivialLayout / SetLayout: Identity or user-given placement
    - VF2Layout: Perfect (zero-SWAP) embedding by VF2-style backtracking
    - SabreLayout: Multi-trial forward/backward routing to bootstrap a placement
    - ApplyLayout: Rewrite the graph onto physical qubits
    - VF2PostLayout / ApplyPostLayout: Relabel a routed circuit onto a lower-error subgraph

Layout passes are analysis passes writing ``property_set["layout"]``; only
ApplyLayout and ApplyPostLayout touch the graph.
"""
from __future__ import annotations

import logging
import random
from collections import Counter

from ..dag import DAGCircuit
from ..exceptions import InfeasibleMappingError, ValidationError
from ..layout import Layout
from ..passmanager import AnalysisPass, TransformationPass
from ..target import Target
from .route import SabreHeuristic, _SwapBudgetExceeded, _route_sabre

logger = logging.getLogger(__name__)


def _check_width(dag: DAGCircuit, target: Target):
    if dag.n_qubits > target.n_qubits:
        raise ValidationError(f"Circuit has {dag.n_qubits} qubits but target has {target.n_qubits}")


def _interaction_counts(dag: DAGCircuit) -> tuple[Counter, Counter]:
    """(pair -> number of 2Q ops, qubit -> number of ops). Directives only count as qubit usage."""
    pairs: Counter = Counter()
    usage: Counter = Counter()
    for op in dag.topological_ops():
        for q in op.qubits: usage[q] += 1
        if op.gate.directive: continue
        qs = op.qubits
        for i in range(len(qs)):
            for j in range(i + 1, len(qs)):
                pairs[(min(qs[i], qs[j]), max(qs[i], qs[j]))] += 1
    return pairs, usage


class _VF2Search:
    """Backtracking subgraph monomorphism of an interaction graph into the coupling graph.

    ``embeddings()`` yields {node: physical} for every node with an edge; it
    stops early once ``call_limit`` recursive calls have been made.
    """

    def __init__(self, edges, target: Target, call_limit: int | None = None):
        self.target = target
        self.call_limit = call_limit
        self.calls = 0
        self.limit_reached = False
        self.adj: dict[int, set[int]] = {}
        for a, b in edges:
            self.adj.setdefault(a, set()).add(b)
            self.adj.setdefault(b, set()).add(a)
        self.tgt_adj = {i: set(target.neighbors(i)) for i in range(target.n_qubits)}
        self.order = self._match_order()

    def _match_order(self) -> list[int]:
        """Highest degree first, then nodes with the most already-ordered neighbours."""
        remaining = set(self.adj)
        order: list[int] = []
        while remaining:
            placed = set(order)
            nxt = max(sorted(remaining), key=lambda q: (len(self.adj[q] & placed), len(self.adj[q]), -q))
            order.append(nxt)
            remaining.remove(nxt)
        return order

    def embeddings(self):
        mapping: dict[int, int] = {}
        used: set[int] = set()

        def extend(idx: int):
            self.calls += 1
            if self.call_limit is not None and self.calls > self.call_limit:
                self.limit_reached = True
                return
            if idx == len(self.order):
                yield dict(mapping)
                return
            lq = self.order[idx]
            mapped = [mapping[nb] for nb in self.adj[lq] if nb in mapping]
            cands = (set.intersection(*(self.tgt_adj[p] for p in mapped)) - used
                     if mapped else set(range(self.target.n_qubits)) - used)
            degree = len(self.adj[lq])
            for pq in sorted(cands):
                if len(self.tgt_adj[pq]) < degree: continue
                mapping[lq] = pq; used.add(pq)
                yield from extend(idx + 1)
                del mapping[lq]; used.remove(pq)
                if self.limit_reached: return

        yield from extend(0)


def _complete(mapping: dict[int, int], n_nodes: int, n_physical: int, prefer=None) -> list[int]:
    """Extend a partial node -> physical map to all nodes; free nodes take ``prefer`` order."""
    taken = set(mapping.values())
    free = iter(p for p in (prefer if prefer is not None else range(n_physical)) if p not in taken)
    return [mapping[q] if q in mapping else next(free) for q in range(n_nodes)]


def _layout_cost(l2p: list[int], pairs: Counter, usage: Counter, target: Target) -> float:
    cost = sum(k * target.two_qubit_error(l2p[a], l2p[b]) for (a, b), k in pairs.items())
    return cost + sum(k * target.qubit_error(l2p[q]) for q, k in usage.items())


def _by_error(target: Target) -> list[int]:
    return sorted(range(target.n_qubits), key=lambda p: (target.qubit_error(p), p))


class TrivialLayout(AnalysisPass):
    """Logical qubit i on physical qubit i."""

    def __init__(self, target: Target):
        super().__init__()
        self.target = target

    def run(self, dag):
        _check_width(dag, self.target)
        self.property_set["layout"] = Layout.trivial(self.target.n_qubits)


class SetLayout(AnalysisPass):
    """Use a user-supplied placement: a list/dict of physical qubits per logical qubit, or a Layout."""

    def __init__(self, initial_layout, target: Target):
        super().__init__()
        self.initial_layout = initial_layout
        self.target = target

    def run(self, dag):
        _check_width(dag, self.target)
        layout = self.initial_layout
        if isinstance(layout, Layout):
            layout = layout.to_list()
        n_given = len(layout)
        if n_given < dag.n_qubits:
            raise ValidationError(f"initial_layout covers {n_given} qubits, circuit has {dag.n_qubits}")
        self.property_set["layout"] = Layout.from_partial(layout, self.target.n_qubits)


class VF2Layout(AnalysisPass):
    """Search for a placement where every interacting pair is coupled.

    Takes the first embedding found, or, when the target carries error data,
    the lowest-error embedding seen before ``call_limit``. Embeddings that put
    an op on an uncalibrated qubit or coupler are skipped. Writes
    ``property_set["layout"]`` on success and ``vf2_layout_stop_reason`` always.
    """

    def __init__(self, target: Target, call_limit: int | None = 30_000, max_trials: int = 256):
        super().__init__()
        self.target = target
        self.call_limit = call_limit
        self.max_trials = max_trials

    def run(self, dag):
        _check_width(dag, self.target)
        pairs, usage = _interaction_counts(dag)
        n = self.target.n_qubits
        scored = self.target.has_error_data
        prefer = _by_error(self.target)

        search = _VF2Search(pairs, self.target, self.call_limit)
        best, best_cost = None, float("inf")
        for trial, mapping in enumerate(search.embeddings()):
            l2p = _complete(mapping, dag.n_qubits, n, prefer)
            cost = _layout_cost(l2p, pairs, usage, self.target)
            if cost == float("inf"):
                continue
            if not scored:
                best = l2p
                break
            if cost < best_cost:
                best, best_cost = l2p, cost
            if trial + 1 >= self.max_trials:
                break

        if best is not None:
            self.property_set["layout"] = Layout.from_partial(best, n)
            self.property_set["vf2_layout_stop_reason"] = "solution found"
        elif search.limit_reached:
            self.property_set["vf2_layout_stop_reason"] = "call limit reached"
        else:
            self.property_set["vf2_layout_stop_reason"] = "no solution found"
        logger.debug("VF2Layout: %s after %d calls", self.property_set["vf2_layout_stop_reason"], search.calls)


# SabreLayout ---------------------------------------------------------------------

def _greedy_path(start: int, adj: dict[int, set[int]]) -> list[int]:
    """Greedy walk from start, preferring neighbours with the fewest unvisited connections."""
    path, visited = [start], {start}
    while True:
        cands = sorted((len(adj[nb] - visited), nb) for nb in adj[path[-1]] if nb not in visited)
        if not cands: break
        path.append(cands[0][1])
        visited.add(cands[0][1])
    return path


def _path_seeds(target: Target, n_logical: int) -> list[list[int]]:
    """Distinct placements that lay the logical qubits along a greedy path from each node."""
    adj = {i: set(target.neighbors(i)) for i in range(target.n_qubits)}
    seen, seeds = set(), []
    for start in range(target.n_qubits):
        path = _greedy_path(start, adj)
        on_path = set(path)
        placement = (path + [q for q in range(target.n_qubits) if q not in on_path])[:n_logical]
        if tuple(placement) not in seen:
            seen.add(tuple(placement))
            seeds.append(placement)
    return seeds


class SabreLayout(AnalysisPass):
    """Pick the placement needing the fewest SWAPs over several seeded trials.

    Each trial routes forward and then over the time-reversed circuit
    ``bidirectional_iterations`` times, so the end placement of one direction
    seeds the other. The resulting start placement is scored by one more
    forward routing. Writes ``property_set["layout"]`` and ``sabre_layout_swaps``.
    """

    def __init__(self, target: Target, seed: int | None = None, layout_trials: int = 5,
                 bidirectional_iterations: int = 2, heuristic: SabreHeuristic | None = None,
                 path_seeds: bool = True):
        super().__init__()
        self.target = target
        self.seed = seed
        self.layout_trials = layout_trials
        self.bidirectional_iterations = bidirectional_iterations
        self.heuristic = heuristic or SabreHeuristic()
        self.path_seeds = path_seeds

    def _starts(self, dag: DAGCircuit, rng: random.Random) -> list[Layout]:
        n = self.target.n_qubits
        starts = [Layout.trivial(n)]
        starts += [Layout(rng.sample(range(n), n)) for _ in range(self.layout_trials - 1)]
        if self.path_seeds:
            starts += [Layout.from_partial(p, n) for p in _path_seeds(self.target, dag.n_qubits)]
        return starts

    def run(self, dag):
        _check_width(dag, self.target)
        seed = self.seed if self.seed is not None else self.property_set["seed"]
        rng = random.Random(seed)
        reverse = dag.reverse_ops()
        best, best_swaps = None, None
        for start in self._starts(dag, rng):
            trial_rng = random.Random(rng.randrange(2 ** 32))
            layout = start.copy()
            try:
                for _ in range(self.bidirectional_iterations):
                    _route_sabre(dag, self.target, layout, trial_rng, self.heuristic)
                    _route_sabre(reverse, self.target, layout, trial_rng, self.heuristic)
                swaps = _route_sabre(dag, self.target, layout.copy(), trial_rng, self.heuristic)
            except (_SwapBudgetExceeded, InfeasibleMappingError) as exc:
                logger.debug("SabreLayout trial skipped: %s", exc)
                continue
            if best_swaps is None or swaps < best_swaps:
                best, best_swaps = layout, swaps

        if best is None:
            logger.warning("Every SabreLayout trial failed; using the trivial layout")
            best = Layout.trivial(self.target.n_qubits)
        self.property_set["layout"] = best
        self.property_set["sabre_layout_swaps"] = best_swaps


class ApplyLayout(TransformationPass):
    """Rewrite logical qubit indices to physical ones, widening to the full target."""

    def __init__(self, target: Target):
        super().__init__()
        self.target = target

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        _check_width(dag, self.target)
        layout = self.property_set["layout"]
        if layout is None:
            layout = Layout.trivial(self.target.n_qubits)
        if len(layout) != self.target.n_qubits:
            raise ValidationError(f"Layout covers {len(layout)} qubits, target has {self.target.n_qubits}")
        out = dag.copy_empty_like(n_qubits=self.target.n_qubits)
        for op in dag.topological_ops():
            out.add_op(op.replace(qubits=layout.get_physical_qubits(op.qubits)))
        out.metadata["initial_layout"] = layout.copy()
        out.metadata["final_layout"] = layout.copy()
        return out


# Post-layout refinement ------------------------------------------------------------

class VF2PostLayout(AnalysisPass):
    """Look for a relabelling of a routed circuit onto a lower-error subgraph.

    Only a strict improvement of the summed calibrated error is reported, as
    ``property_set["post_layout"]`` (perm[p] = new physical qubit for p).
    Writes ``vf2_post_layout_stop_reason`` always.
    """

    def __init__(self, target: Target, call_limit: int | None = 30_000, max_trials: int = 256):
        super().__init__()
        self.target = target
        self.call_limit = call_limit
        self.max_trials = max_trials

    def run(self, dag):
        target = self.target
        n = target.n_qubits
        if not target.has_error_data:
            self.property_set["vf2_post_layout_stop_reason"] = "no error data"
            return
        if any(not op.gate.directive and len(op.qubits) > 2 for op in dag.topological_ops()):
            self.property_set["vf2_post_layout_stop_reason"] = "more than 2q gates"
            return
        pairs, usage = _interaction_counts(dag)
        identity = list(range(n))
        current = _layout_cost(identity, pairs, usage, target)
        prefer = _by_error(target)

        search = _VF2Search(pairs, target, self.call_limit)
        best, best_cost = None, current
        for trial, mapping in enumerate(search.embeddings()):
            # used qubits without edges take the best free qubits first
            fixed, taken = dict(mapping), set(mapping.values())
            for q in sorted(usage, key=lambda q: (-usage[q], q)):
                if q not in fixed:
                    fixed[q] = next(p for p in prefer if p not in taken)
                    taken.add(fixed[q])
            perm = _complete(fixed, n, n)
            cost = _layout_cost(perm, pairs, usage, target)
            if cost < best_cost - 1e-12:
                best, best_cost = perm, cost
            if trial + 1 >= self.max_trials:
                break

        if best is not None:
            self.property_set["post_layout"] = best
            self.property_set["vf2_post_layout_stop_reason"] = "solution found"
            logger.info("VF2PostLayout lowered the error estimate from %.4g to %.4g", current, best_cost)
        elif search.limit_reached:
            self.property_set["vf2_post_layout_stop_reason"] = "call limit reached"
        else:
            self.property_set["vf2_post_layout_stop_reason"] = "no better solution found"


class ApplyPostLayout(TransformationPass):
    """Relabel physical qubits by ``property_set["post_layout"]``; no-op when it is unset."""

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        perm = self.property_set["post_layout"]
        if perm is None:
            return dag
        if sorted(perm) != list(range(dag.n_qubits)):
            raise ValidationError(f"post_layout {perm} is not a permutation of the circuit's qubits")
        out = dag.copy_empty_like()
        for op in dag.topological_ops():
            out.add_op(op.replace(qubits=tuple(perm[q] for q in op.qubits)))
        for key in ("initial_layout", "final_layout"):
            layout = dag.metadata.get(key)
            out.metadata[key] = (layout if layout is not None else Layout.trivial(dag.n_qubits)).compose_physical(perm)
        return out
