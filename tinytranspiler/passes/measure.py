"""
Measurement-aware cleanup passes for the init stage.

Contains:
    - RemoveResetInZeroState: Drop resets acting on a fresh |0> qubit
    - OptimizeSwapBeforeMeasure: Drop a final SWAP by swapping the measured qubits
    - RemoveDiagonalGatesBeforeMeasure: Drop diagonal gates right before measurement

The last two change the circuit unitary and only preserve measurement outcomes.
"""
from __future__ import annotations

from ..dag import DAGCircuit, DIAGONAL_GATES
from ..gates import Gate
from ..passmanager import TransformationPass


class RemoveResetInZeroState(TransformationPass):
    """Remove reset gate when the qubit is in zero state"""

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        for nid in dag.topological_order():
            op = dag.op(nid)
            if op.gate == Gate.RESET and dag.is_successor_of_input(nid, op.qubits[0]):
                dag.remove_op_node(nid)
        return dag


def _is_final_measure(dag: DAGCircuit, nid: int | None) -> bool:
    if nid is None:
        return False
    op = dag.op(nid)
    return (op.gate == Gate.MEASURE and op.condition is None
            and dag.is_followed_by_output(nid, ("q", op.qubits[0]))
            and dag.is_followed_by_output(nid, ("c", op.clbits[0])))


class OptimizeSwapBeforeMeasure(TransformationPass):
    """Remove the swaps followed by measurement (and adapt the measurement)."""

    preserves_unitary = False

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        for nid in dag.topological_order():
            if nid not in dag:
                continue
            op = dag.op(nid)
            if op.gate != Gate.SWAP or op.condition is not None:
                continue
            a, b = op.qubits
            after = {q: dag.next_on_qubit(nid, q) for q in (a, b)}
            if not all(dag.is_followed_by_output(nid, ("q", q)) or _is_final_measure(dag, after[q])
                       for q in (a, b)) or after[a] is None and after[b] is None:
                continue
            moved = []
            for q, other in ((a, b), (b, a)):
                if after[q] is not None:
                    moved.append(dag.op(after[q]).replace(qubits=(other,)))
                    dag.remove_op_node(after[q])
            dag.remove_op_node(nid)
            for m in moved:
                dag.add_op(m)
        return dag


class RemoveDiagonalGatesBeforeMeasure(TransformationPass):
    """Remove diagonal gates (like RZ, T, Z, etc) before a measurement.

    Including diagonal 2Q gates whose every successor is a measurement.
    """

    preserves_unitary = False

    def _removable(self, dag: DAGCircuit, measure: int) -> int | None:
        m = dag.op(measure)
        if m.condition is not None:
            return None
        pred = dag.prev_on_qubit(measure, m.qubits[0])
        if pred is None:
            return None
        op = dag.op(pred)
        if op.name not in DIAGONAL_GATES or op.condition is not None:
            return None
        if len(op.qubits) == 1:
            return pred
        nexts = [dag.next_on_qubit(pred, q) for q in op.qubits]
        if len(op.qubits) == 2 and all(s is not None and dag.op(s).gate == Gate.MEASURE
                                       and dag.op(s).condition is None for s in nexts):
            return pred
        return None

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        changed = True
        while changed:
            changed = False
            for nid in dag.topological_order():
                if nid not in dag or dag.op(nid).gate != Gate.MEASURE:
                    continue
                victim = self._removable(dag, nid)
                if victim is not None:
                    dag.remove_op_node(victim)
                    changed = True
        return dag
