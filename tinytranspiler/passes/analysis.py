"""
Analysis passes: read the graph, write the property set.

Contains:
    - CheckMap: Is every multi-qubit op on a coupled pair?  -> is_swap_mapped
    - DAGFingerprint: Hash of the current op sequence        -> dag_fingerprint
    - FixedPoint: Has a property stopped changing?           -> <prop>_fixed_point
"""
from __future__ import annotations

from ..dag import DAGCircuit
from ..passmanager import AnalysisPass
from ..target import Target


class CheckMap(AnalysisPass):
    """Check that every 2-qubit op sits on a coupling edge (direction ignored).

    On a physical graph (after ApplyLayout) qubit indices are used as they are;
    otherwise they are mapped through ``property_set["layout"]``.
    Ops on three or more qubits are never considered mapped.
    """

    def __init__(self, target: Target):
        super().__init__()
        self.target = target

    def run(self, dag: DAGCircuit):
        self.property_set["is_swap_mapped"] = True
        physical = "initial_layout" in dag.metadata
        layout = None if physical else self.property_set["layout"]
        for nid in dag.topological_order():
            op = dag.op(nid)
            if op.gate.directive or len(op.qubits) < 2:
                continue
            if len(op.qubits) > 2:
                self.property_set["is_swap_mapped"] = False
                return
            qs = op.qubits if layout is None else layout.get_physical_qubits(op.qubits)
            if any(q >= self.target.n_qubits for q in qs) or not self.target.are_connected(*qs):
                self.property_set["is_swap_mapped"] = False
                return


class DAGFingerprint(AnalysisPass):
    """Store a hash of the graph in ``property_set["dag_fingerprint"]``."""

    def run(self, dag):
        self.property_set["dag_fingerprint"] = dag.fingerprint()


class FixedPoint(AnalysisPass):
    """Check if a property reached a fixed point.

    Sets ``property_set["<prop>_fixed_point"]`` to True once the value of
    ``prop`` equals the one seen on the previous run.
    """

    def __init__(self, property_to_check: str):
        super().__init__()
        self._property = property_to_check

    @property
    def name(self) -> str:
        return f"FixedPoint({self._property})"

    def run(self, dag):
        current_value = self.property_set[self._property]
        fixed_point_previous_property = f"_fixed_point_previous_{self._property}"
        fixed_point_reached = (self.property_set[fixed_point_previous_property] is not None
                               and current_value == self.property_set[fixed_point_previous_property])
        self.property_set[f"{self._property}_fixed_point"] = fixed_point_reached
        self.property_set[fixed_point_previous_property] = current_value
