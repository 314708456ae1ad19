"""
Direction correction for one-way couplers.

Flip rules come from the equivalence library, e.g.
CX(a,b) = H(a) H(b) CX(b,a) H(a) H(b).
Inserted 1Q gates are translated and cleaned up by the passes that follow.
"""
from __future__ import annotations

from ..dag import DAGCircuit
from ..equivalence import STANDARD_EQUIVALENCES, EquivalenceLibrary
from ..exceptions import UnsupportedOperationError
from ..passmanager import TransformationPass
from ..target import Target


class GateDirection(TransformationPass):
    """Reverse 2Q ops the target only supports the other way round.

    Basis instructions follow ``target.supports``, so a calibration listed for
    one ordering only counts as a one-way coupler. Other gates follow the
    edge direction of a directed target. Ops allowed in neither direction are
    left for validation to report.
    """

    def __init__(self, target: Target, equivalence_library: EquivalenceLibrary | None = None):
        super().__init__()
        self.target = target
        self.library = equivalence_library if equivalence_library is not None else STANDARD_EQUIVALENCES

    def _allowed(self, name: str, qubits: tuple[int, int]) -> bool:
        if name in self.target.basis_gates:
            return self.target.supports(name, qubits)
        return self.target.has_edge(*qubits)

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        if not (self.target.directed or self.target.has_one_way_couplers):
            return dag
        for nid in dag.topological_order():
            op = dag.op(nid)
            if op.gate.directive or len(op.qubits) != 2:
                continue
            a, b = op.qubits
            if self._allowed(op.name, (a, b)) or not self._allowed(op.name, (b, a)):
                continue
            flip = self.library.get_flip(op.name)
            if flip is None:
                raise UnsupportedOperationError(f"{op.name}({a},{b}) only runs as ({b},{a}) and has no flip rule",
                                                operation=op)
            dag.substitute_node_with_ops(nid, flip(op.qubits, op.params))
        return dag
