"""Gate fusion: merge runs of 1Q gates and resynthesize 2Q blocks (KAK)."""
from __future__ import annotations

import logging

from ..dag import DAGCircuit
from ..equivalence import EquivalenceLibrary
from ..exceptions import UnsupportedOperationError
from ..gates import GATES
from ..ir import Operation
from ..passmanager import TransformationPass
from ..simulator import ops_unitary
from ..target import Target
from ._euler import best_1q
from ._kak import two_qubit_decompose
from .decompose import BasisTranslator
from .direction import GateDirection

logger = logging.getLogger(__name__)


def _fusible(op: Operation, n: int) -> bool:
    return (len(op.qubits) == n and not op.gate.directive and op.condition is None
            and op.gate.has_matrix and not op.is_parameterized)


def _matrix_1q(ops: list[Operation]):
    return ops_unitary([o.replace(qubits=(0,)) for o in ops], 1)


class Optimize1qGates(TransformationPass):
    """Collapse each run of unitary 1Q gates into the shortest Euler sequence.

    A run is replaced when the result is strictly shorter, or when the run
    holds gates outside the basis. Without any usable Euler basis the pass
    does nothing.
    """

    def __init__(self, basis=None, target: Target | None = None):
        super().__init__()
        if basis is not None:
            self.basis = frozenset(basis)
        elif target is not None:
            self.basis = target.basis_gates
        else:
            self.basis = None

    def _runs(self, dag: DAGCircuit) -> list[list[int]]:
        runs, seen = [], set()
        for nid in dag.topological_order():
            if nid in seen or not _fusible(dag.op(nid), 1):
                continue
            q = dag.op(nid).qubits[0]
            run = [nid]
            nxt = dag.next_on_qubit(nid, q)
            while nxt is not None and _fusible(dag.op(nxt), 1):
                run.append(nxt)
                nxt = dag.next_on_qubit(nxt, q)
            seen.update(run)
            runs.append(run)
        return runs

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        names = self.basis if self.basis is not None else frozenset(GATES)
        for run in self._runs(dag):
            ops = [dag.op(n) for n in run]
            q = ops[0].qubits[0]
            new = best_1q(_matrix_1q(ops), q, names)
            if new is None:
                return dag
            off_basis = self.basis is not None and any(o.name not in self.basis for o in ops)
            if len(new) < len(ops) or off_basis:
                for n in run[1:]: dag.remove_node(n)
                dag.substitute_node_with_ops(run[0], new)
        return dag


class TwoQubitResynthesis(TransformationPass):
    """Resynthesize maximal blocks on one qubit pair with at most three CX.

    The result is translated to the target basis (and direction) and accepted
    only when it has strictly fewer 2Q ops than the block. ``approximation_degree``
    below 1 lets the synthesizer drop interactions whose fidelity contribution
    is below the assumed 2Q gate fidelity. ``synthesis_trials >= 2`` also tries
    the mirrored qubit order.
    """

    def __init__(self, target: Target, equivalence_library: EquivalenceLibrary | None = None,
                 approximation_degree: float = 1.0, synthesis_trials: int = 1):
        super().__init__()
        self.target = target
        self.library = equivalence_library
        self.approximation_degree = approximation_degree
        self.synthesis_trials = synthesis_trials
        self.preserves_unitary = approximation_degree >= 1.0

    def _collect(self, dag: DAGCircuit, start: int, taken: set[int]) -> list[int]:
        """Nodes of the block grown from a 2Q node: 1Q ops before it, then forward on the pair."""
        a, b = dag.op(start).qubits
        block = [start]
        for q in (a, b):
            prev = dag.prev_on_qubit(start, q)
            while prev is not None and prev not in taken and _fusible(dag.op(prev), 1):
                block.insert(0, prev)
                prev = dag.prev_on_qubit(prev, q)
        tail = {a: start, b: start}
        while True:
            for q in (a, b):
                nxt = dag.next_on_qubit(tail[q], q)
                while nxt is not None and _fusible(dag.op(nxt), 1):
                    block.append(nxt)
                    tail[q] = nxt
                    nxt = dag.next_on_qubit(nxt, q)
            na, nb = dag.next_on_qubit(tail[a], a), dag.next_on_qubit(tail[b], b)
            if na is None or na != nb or not _fusible(dag.op(na), 2):
                return block
            block.append(na)
            tail[a] = tail[b] = na

    def _translate(self, ops: list[Operation], n_qubits: int) -> list[Operation]:
        tmp = DAGCircuit(n_qubits)
        for o in ops: tmp.add_op(o)
        translator = BasisTranslator(self.target.basis_gates, self.library, self.target)
        for pass_ in (translator, GateDirection(self.target, self.library), translator):
            tmp = pass_.run(tmp)
        return tmp.topological_ops()

    def _candidates(self, dag: DAGCircuit, ops: list[Operation], a: int, b: int):
        orders = [(a, b), (b, a)]
        if not self.target.two_qubit_supported(a, b) and self.target.two_qubit_supported(b, a):
            orders.reverse()
        for q0, q1 in orders[:max(1, self.synthesis_trials)]:
            local = {q0: 0, q1: 1}
            U = ops_unitary([o.replace(qubits=tuple(local[q] for q in o.qubits)) for o in ops], 2)
            synth = two_qubit_decompose(U, basis_fidelity=self.approximation_degree)
            if synth is None:
                continue
            phys = (q0, q1)
            mapped = [o.replace(qubits=tuple(phys[q] for q in o.qubits)) for o in synth]
            try:
                yield self._translate(mapped, dag.n_qubits)
            except UnsupportedOperationError as err:
                logger.debug("Resynthesized block on (%d, %d) cannot be translated: %s", q0, q1, err)

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        taken: set[int] = set()
        for nid in dag.topological_order():
            if nid not in dag or nid in taken or not _fusible(dag.op(nid), 2):
                continue
            block = self._collect(dag, nid, taken)
            taken.update(block)
            ops = [dag.op(n) for n in block]
            two_q = [n for n in block if len(dag.op(n).qubits) == 2]
            if len(two_q) < 2 and self.approximation_degree >= 1.0:
                continue
            a, b = dag.op(nid).qubits
            best = None
            for cand in self._candidates(dag, ops, a, b):
                key = (sum(1 for o in cand if len(o.qubits) == 2), len(cand))
                if best is None or key < best[0]:
                    best = (key, cand)
            if best is None or best[0][0] >= len(two_q):
                continue
            logger.debug("Block on (%d, %d): %d -> %d two-qubit ops", a, b, len(two_q), best[0][0])
            for n in block:
                if n != two_q[0]: dag.remove_node(n)
            dag.substitute_node_with_ops(two_q[0], best[1])
        return dag
