"""
Gate decomposition to a target basis.

Contains:
    - BasisTranslator: Rewrite non-basis ops through the cheapest equivalence-rule path
    - Unroll3qOrMore: Lower ops on three or more qubits to 1Q/2Q ops

A gate with no rule path but a known 1Q/2Q matrix is resynthesized
(Euler angles or KAK) and the synthesized ops are translated in turn.
"""
from __future__ import annotations

import logging

from ..dag import DAGCircuit
from ..equivalence import STANDARD_EQUIVALENCES, EquivalenceLibrary, search_basis
from ..exceptions import UnsupportedOperationError, ValidationError
from ..gates import gate_by_name
from ..ir import Operation, is_symbolic
from ..passmanager import TransformationPass
from ._euler import best_1q, synthesize_1q
from ._kak import two_qubit_decompose

logger = logging.getLogger(__name__)


def _remap(ops: list[Operation], qubits: tuple[int, ...]) -> list[Operation]:
    """Move ops written on local qubits 0..k-1 onto ``qubits``."""
    return [o.replace(qubits=tuple(qubits[q] for q in o.qubits)) for o in ops]


def _substitute(dag: DAGCircuit, nid: int, local_ops: list[Operation]):
    op = dag.op(nid)
    sub = DAGCircuit(len(op.qubits), len(op.clbits))
    for o in local_ops: sub.add_op(o)
    dag.substitute_node_with_dag(nid, sub)


class BasisTranslator(TransformationPass):
    """Translate every op whose name is outside the basis.

    Rules are picked by ``search_basis`` (fewest resulting basis ops);
    expansions are memoised per (name, params) for one run.
    """

    def __init__(self, basis_gates=None, equivalence_library: EquivalenceLibrary | None = None,
                 target=None):
        super().__init__()
        if basis_gates is None and target is None:
            raise ValidationError("BasisTranslator needs basis_gates or a target")
        self.basis = frozenset(basis_gates) if basis_gates is not None else target.basis_gates
        self.library = equivalence_library if equivalence_library is not None else STANDARD_EQUIVALENCES
        self.target = target
        self._table: dict = {}
        self._memo: dict[tuple, list[Operation]] = {}

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        self._table = search_basis(self.library, self.basis)
        self._memo = {}
        for nid in dag.topological_order():
            op = dag.op(nid)
            if op.gate.directive or op.name in self.basis:
                continue
            try:
                local = self._expand(op.name, op.params, len(op.qubits))
            except UnsupportedOperationError as err:
                raise UnsupportedOperationError(
                    f"No path from {op.name} to basis {{{', '.join(sorted(self.basis))}}}: {err.message}",
                    operation=op) from None
            _substitute(dag, nid, local)
        return dag

    def _expand(self, name: str, params: tuple, k: int) -> list[Operation]:
        key = (name, params)
        if key in self._memo:
            return self._memo[key]
        entry = self._table.get(name)
        if entry is None:
            ops = self._synthesize(name, params, k)
        elif entry[1] is None:
            ops = [Operation(gate_by_name(name), tuple(range(k)), params)]
        else:
            ops = []
            for child in entry[1].expand(tuple(range(k)), params):
                if child.gate.directive or child.name in self.basis:
                    ops.append(child)
                else:
                    ops.extend(_remap(self._expand(child.name, child.params, len(child.qubits)), child.qubits))
        self._memo[key] = ops
        return ops

    def _synthesize(self, name: str, params: tuple, k: int) -> list[Operation]:
        gate = gate_by_name(name)
        if not gate.has_matrix or k > 2 or any(is_symbolic(p) for p in params):
            raise UnsupportedOperationError(f"no equivalence rule for {name}")
        U = gate.to_matrix(params)
        if k == 1:
            ops = best_1q(U, 0, self.basis)
            if ops is not None:
                return ops
            ops = synthesize_1q(U, 0, "ZYZ")
        else:
            ops = two_qubit_decompose(U)
            if ops is None:
                raise UnsupportedOperationError(f"two-qubit synthesis of {name} failed")
        logger.debug("Synthesized %s from its matrix into %d op(s)", name, len(ops))
        out: list[Operation] = []
        for child in ops:
            if child.name in self.basis:
                out.append(child)
            elif child.name in self._table:
                out.extend(_remap(self._expand(child.name, child.params, len(child.qubits)), child.qubits))
            else:
                raise UnsupportedOperationError(f"no equivalence rule for {name} and {child.name} is unreachable")
        return out


class Unroll3qOrMore(TransformationPass):
    """Recursively expand non-directive ops on three or more qubits with their first rule.

    Ops whose name is in ``basis`` are kept.
    """

    def __init__(self, equivalence_library: EquivalenceLibrary | None = None, basis_gates=None):
        super().__init__()
        self.library = equivalence_library if equivalence_library is not None else STANDARD_EQUIVALENCES
        self.basis = frozenset(basis_gates or ())

    def _unroll(self, op: Operation) -> list[Operation]:
        if op.gate.directive or len(op.qubits) < 3 or op.name in self.basis:
            return [op]
        rules = self.library.get_equivalences(op.name)
        if not rules:
            raise UnsupportedOperationError(f"No rule to unroll {op.name} on {len(op.qubits)} qubits", operation=op)
        out: list[Operation] = []
        for child in rules[0].expand(op.qubits, op.params):
            out.extend(self._unroll(child))
        return out

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        for nid in dag.topological_order():
            op = dag.op(nid)
            if op.gate.directive or len(op.qubits) < 3 or op.name in self.basis:
                continue
            _substitute(dag, nid, self._unroll(op.replace(qubits=tuple(range(len(op.qubits))), clbits=(),
                                                            condition=None)))
        return dag
