"""
Pattern-based gate cancellation (DAG-native).

Contains:
    - CommutativeCancellation: Apply cancellation and merge rules until fixed point

Each sweep visits ops in topological order and tries, per op:
    - Cancellation: [X,X]->[], [H,H]->[], [CX,CX]->[], [SWAP,SWAP]->[], [ECR,ECR]->[]
    - Merge: [RZ(a),RZ(b)]->[RZ(a+b)], same for RX, RY, P, CP, RZZ, RXX
    - Clifford: [S,S]->[Z], [T,T]->[S], [SX,SX]->[X], [S,S†]->[], [T,T†]->[]
    - H sandwiches: h x h = z, h z h = x, h(t) cx h(t) = cz, h cz h = cx
    - CX conjugation: CX·P·CX for a Pauli P on control or target
    - Partners are found past ops that commute with the first gate

Results outside the basis (or unsupported by the target on those qubits) are
not produced. Conditioned operations are never touched.
"""
from __future__ import annotations

from math import pi

from ..dag import DAGCircuit, commutes
from ..gates import Gate
from ..ir import Operation, is_symbolic
from ..passmanager import TransformationPass


_SELF_INVERSE = (Gate.X, Gate.Y, Gate.Z, Gate.H, Gate.CX, Gate.CY, Gate.CZ, Gate.ECR, Gate.SWAP, Gate.CCX, Gate.CCZ)
_INVERSES = {Gate.S: Gate.SDG, Gate.SDG: Gate.S, Gate.T: Gate.TDG, Gate.TDG: Gate.T,
             Gate.SX: Gate.SXDG, Gate.SXDG: Gate.SX}
_SQUARES = {Gate.S: Gate.Z, Gate.T: Gate.S, Gate.SDG: Gate.Z, Gate.TDG: Gate.SDG,
            Gate.SX: Gate.X, Gate.SXDG: Gate.X}
_ROTATIONS = (Gate.RX, Gate.RY, Gate.RZ, Gate.P, Gate.CP, Gate.RZZ, Gate.RXX)
_DIAG_ANGLE = {Gate.T: pi/4, Gate.TDG: -pi/4, Gate.S: pi/2, Gate.SDG: -pi/2, Gate.Z: pi}

# gate -> [(partner, outcome)] where outcome is None (drop both), a Gate (first
# becomes it, partner dropped), "merge" (add angles) or "cross_diag" (rz of the
# summed phases). Cancellations are listed ahead of merges.
_PARTNER_INDEX: dict[Gate, list[tuple[Gate, Gate | str | None]]] = {}
for _g in _SELF_INVERSE:
    _PARTNER_INDEX.setdefault(_g, []).append((_g, None))
for _g, _inv in _INVERSES.items():
    _PARTNER_INDEX.setdefault(_g, []).append((_inv, None))
for _g, _sq in _SQUARES.items():
    _PARTNER_INDEX.setdefault(_g, []).append((_g, _sq))
for _g in _ROTATIONS:
    _PARTNER_INDEX.setdefault(_g, []).append((_g, "merge"))
for _g in _DIAG_ANGLE:
    _PARTNER_INDEX[_g].extend((_h, "cross_diag") for _h in _DIAG_ANGLE if _h != _g)

# H x H = z and H z H = x on one qubit
_H_SANDWICH_1Q = {Gate.X: Gate.Z, Gate.Z: Gate.X}

# H on one operand of a 2Q gate: (inner gate, operand index) -> (new gate, swap operands?)
_H_SANDWICH_2Q = {
    (Gate.CX, 1): (Gate.CZ, False),
    (Gate.CZ, 0): (Gate.CX, True),
    (Gate.CZ, 1): (Gate.CX, False),
}


def _wrap(angle):
    """Wrap a concrete angle into [-π, π); symbolic angles are kept as they are."""
    return angle if is_symbolic(angle) else (float(angle) + pi) % (2 * pi) - pi


def _is_zero(angle) -> bool:
    return not is_symbolic(angle) and abs(angle) < 1e-9


def _between(dag: DAGCircuit, nid: int, end: int, q: int):
    mid = dag.next_on_qubit(nid, q)
    while mid is not None and mid != end:
        yield mid
        mid = dag.next_on_qubit(mid, q)


def _find_partner(dag: DAGCircuit, nid: int, predicate, max_steps: int = 50) -> int | None:
    """First later op satisfying ``predicate`` that nid can be moved next to.

    Scans along the wire of nid's first qubit. Every op between the two on any
    shared wire must commute with nid.
    """
    op = dag.op(nid)
    cur = dag.next_on_qubit(nid, op.qubits[0])
    for _ in range(max_steps):
        if cur is None:
            return None
        candidate = dag.op(cur)
        if predicate(candidate) and all(commutes(op, dag.op(mid)) for q in op.qubits
                                        for mid in _between(dag, nid, cur, q)):
            return cur
        if not commutes(op, candidate):
            return None
        cur = dag.next_on_qubit(cur, op.qubits[0])
    return None


def _is_pauli_like(op: Operation, gate: Gate, rot_gate: Gate) -> bool:
    """``gate``, or ``rot_gate`` at an angle of π mod 2π."""
    return op.gate == gate or (op.gate == rot_gate and op.params and not is_symbolic(op.params[0])
                               and abs(op.params[0] % (2 * pi) - pi) < 1e-9)


class CommutativeCancellation(TransformationPass):
    """Cancel and merge gates, looking through commuting neighbours.

    ``basis`` (gate names) and ``target`` restrict which gates a rule may create.
    """

    def __init__(self, basis=None, target=None, max_iterations: int = 1000):
        super().__init__()
        self.basis = frozenset(basis) if basis is not None else None
        self.target = target
        self.max_iterations = max_iterations

    def _allowed(self, gate: Gate, qubits: tuple[int, ...]) -> bool:
        if self.basis is not None and gate.name not in self.basis:
            return False
        return self.target is None or self.target.supports(gate.name, qubits)

    def _try_partner_rule(self, dag: DAGCircuit, nid: int) -> bool:
        """Cancel or merge nid with a matching later op."""
        op = dag.op(nid)
        for partner_gate, result in _PARTNER_INDEX.get(op.gate, ()):
            if isinstance(result, Gate) and not self._allowed(result, op.qubits):
                continue
            if result == "cross_diag" and not self._allowed(Gate.RZ, op.qubits):
                continue
            match = _find_partner(dag, nid, lambda c, pg=partner_gate: (
                c.gate == pg and c.qubits == op.qubits and c.condition is None))
            if match is None:
                continue
            if result is None:
                dag.remove_node(match)
                dag.remove_node(nid)
            elif result in ("merge", "cross_diag"):
                other = dag.op(match)
                if result == "merge":
                    gate, angle = op.gate, _wrap(op.params[0] + other.params[0])
                else:
                    gate, angle = Gate.RZ, _wrap(_DIAG_ANGLE[op.gate] + _DIAG_ANGLE[other.gate])
                dag.remove_node(match)
                if _is_zero(angle):
                    dag.remove_node(nid)
                else:
                    dag.set_op(nid, Operation(gate, op.qubits, (angle,)))
            else:
                dag.set_op(nid, Operation(result, op.qubits))
                dag.remove_node(match)
            return True
        return False

    def _try_conjugate(self, dag: DAGCircuit, nid: int) -> bool:
        """Rewrite H·G·H when the three ops are adjacent on the H wire."""
        op = dag.op(nid)
        if op.gate != Gate.H:
            return False
        q = op.qubits[0]
        mid = dag.next_on_qubit(nid, q)
        end = dag.next_on_qubit(mid, q) if mid is not None else None
        if end is None:
            return False
        mid_op, end_op = dag.op(mid), dag.op(end)
        if mid_op.condition is not None or end_op.condition is not None:
            return False
        if end_op.gate != op.gate or end_op.qubits != op.qubits:
            return False
        if mid_op.qubits == op.qubits:
            result = _H_SANDWICH_1Q.get(mid_op.gate)
            if result is None or not self._allowed(result, op.qubits):
                return False
            dag.set_op(nid, Operation(result, op.qubits))
            dag.remove_node(mid)
            dag.remove_node(end)
            return True
        if len(mid_op.qubits) != 2:
            return False
        rewrite = _H_SANDWICH_2Q.get((mid_op.gate, mid_op.qubits.index(q)))
        if rewrite is None:
            return False
        result, flip = rewrite
        rq = mid_op.qubits[::-1] if flip else mid_op.qubits
        if not self._allowed(result, rq):
            return False
        dag.set_op(mid, Operation(result, rq))
        dag.remove_node(nid)
        dag.remove_node(end)
        return True

    def _try_cx_conjugation(self, dag: DAGCircuit, nid: int, max_steps: int = 50) -> bool:
        """Push a Pauli out of a cx ... cx pair on the same qubits and drop both cx."""
        op = dag.op(nid)
        if op.gate != Gate.CX:
            return False
        c, t = op.qubits
        cur = dag.next_on_qubit(nid, c)
        for _ in range(max_steps):
            if cur is None:
                return False
            cur_op = dag.op(cur)
            if cur_op.gate == Gate.CX and cur_op.qubits == (c, t) and cur_op.condition is None:
                if self._apply_cx_conjugation(dag, nid, cur):
                    return True
            cur = dag.next_on_qubit(cur, c)
        return False

    def _apply_cx_conjugation(self, dag: DAGCircuit, nid: int, cur: int) -> bool:
        op = dag.op(nid)
        c, t = op.qubits
        pauli = None
        for q in (c, t):
            for mid in _between(dag, nid, cur, q):
                mid_op = dag.op(mid)
                if len(mid_op.qubits) != 1 or mid_op.condition is not None:
                    continue
                if _is_pauli_like(mid_op, Gate.Z, Gate.RZ):
                    pauli = (mid, True, q == t)
                elif _is_pauli_like(mid_op, Gate.X, Gate.RX):
                    pauli = (mid, False, q == t)
                if pauli is not None: break
            if pauli is not None: break
        if pauli is None:
            return False
        pauli_nid, is_z, on_target = pauli
        pauli_op = dag.op(pauli_nid)
        make = lambda q: pauli_op.replace(qubits=(q,))
        if is_z == on_target:  # z on target, x on control: copied to both wires
            first, second = make(c), make(t)
        else:  # z on control, x on target: passes through unchanged
            first, second = make(t if on_target else c), None
        if not self._allowed(pauli_op.gate, (c,)) or not self._allowed(pauli_op.gate, (t,)):
            return False

        # Intermediates must commute with the CX and with the 1Q ops moved past them
        movers = [first] + ([second] if second is not None else [])
        for q in (c, t):
            for mid in _between(dag, nid, cur, q):
                if mid == pauli_nid: continue
                mid_op = dag.op(mid)
                if not commutes(mid_op, op) or not all(commutes(mid_op, m) for m in movers):
                    return False

        dag.remove_node(pauli_nid)
        dag.substitute_node_with_ops(nid, [first])
        if second is None:
            dag.remove_node(cur)
        else:
            dag.substitute_node_with_ops(cur, [second])
        return True

    def _dag_pass(self, dag: DAGCircuit) -> bool:
        """One sweep over the graph; True if anything changed."""
        changed = False
        for nid in dag.topological_order():
            if nid not in dag or dag.op(nid).condition is not None:
                continue
            if self._try_partner_rule(dag, nid) or self._try_conjugate(dag, nid) or self._try_cx_conjugation(dag, nid):
                changed = True
        return changed

    def run(self, dag: DAGCircuit) -> DAGCircuit:
        for _ in range(self.max_iterations):
            if not self._dag_pass(dag):
                break
        return dag
