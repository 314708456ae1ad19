"""DAG-based circuit IR for compilation passes.

The graph is an arena of nodes addressed by stable integer ids. Every wire
(qubit or classical bit) has one input node and one output node; each op node
sits on exactly one path per wire it touches, so per-wire predecessor/successor
maps fully describe the edges. Gates on disjoint wires are implicitly parallel.

Also contains the centralized commutation rules used by all passes.
"""
from __future__ import annotations

import heapq
from math import isclose

from .exceptions import StructuralError, ValidationError
from .ir import Circuit, Operation, is_symbolic

Wire = tuple[str, int]  # ("q", index) or ("c", index)


# Centralized commutation rules -----------------------------------------------

DIAGONAL_GATES = {"z", "s", "t", "sdg", "tdg", "rz", "p", "cz", "cp", "rzz", "ccz"}
_DIAG_1Q = {"z", "s", "t", "sdg", "tdg", "rz", "p"}
_X_AXIS_1Q = {"x", "rx", "sx", "sxdg"}


def commutes(op1: Operation, op2: Operation) -> bool:
    """Check if two operations commute (conservative, only proven cases).

    WARNING: Only returns True for proven cases. When adding new gates to the IR,
    you MUST update this function or the optimizer will silently miss opportunities
    (safe) or worse, produce wrong circuits if a case incorrectly returns True.
    """
    if op1.gate.directive or op2.gate.directive:
        return False
    if op1.condition is not None or op2.condition is not None:
        return False
    q1, q2 = set(op1.qubits), set(op2.qubits)
    if not (q1 & q2): return True
    n1, n2 = op1.name, op2.name
    # Single-qubit diagonal gates commute with CX on control qubit
    if n1 in _DIAG_1Q and n2 == "cx": return op1.qubits[0] == op2.qubits[0]
    if n2 in _DIAG_1Q and n1 == "cx": return op2.qubits[0] == op1.qubits[0]
    # X-axis rotations commute with CX on target qubit
    if n1 in _X_AXIS_1Q and n2 == "cx": return op1.qubits[0] == op2.qubits[1]
    if n2 in _X_AXIS_1Q and n1 == "cx": return op2.qubits[0] == op1.qubits[1]
    # Diagonal 1Q gates commute with CCX on control qubits
    if n1 in _DIAG_1Q and n2 == "ccx": return op1.qubits[0] in op2.qubits[:2]
    if n2 in _DIAG_1Q and n1 == "ccx": return op2.qubits[0] in op1.qubits[:2]
    # X-axis rotations commute with CCX on target
    if n1 in _X_AXIS_1Q and n2 == "ccx": return op1.qubits[0] == op2.qubits[2]
    if n2 in _X_AXIS_1Q and n1 == "ccx": return op2.qubits[0] == op1.qubits[2]
    # Two CX sharing only the control, or only the target, commute
    if n1 == "cx" and n2 == "cx":
        return (op1.qubits[0] == op2.qubits[0] and op1.qubits[1] != op2.qubits[1]) or \
               (op1.qubits[1] == op2.qubits[1] and op1.qubits[0] != op2.qubits[0])
    # Diagonal gates commute with each other
    if n1 in DIAGONAL_GATES and n2 in DIAGONAL_GATES: return True
    # Same-axis X rotations on one qubit
    if n1 in _X_AXIS_1Q and n2 in _X_AXIS_1Q: return True
    return False


def _params_match(a, b) -> bool:
    if is_symbolic(a) or is_symbolic(b):
        return True
    return isclose(float(a), float(b), rel_tol=0.0, abs_tol=1e-10)


def semantic_eq(op1: Operation, op2: Operation) -> bool:
    """Equal iff name, qubit/clbit/param counts and concrete params match.

    Symbolic (unbound) parameters match any value.
    """
    if op1.name != op2.name: return False
    if len(op1.qubits) != len(op2.qubits) or len(op1.clbits) != len(op2.clbits): return False
    if len(op1.params) != len(op2.params): return False
    return all(_params_match(a, b) for a, b in zip(op1.params, op2.params))


def op_wires(op: Operation) -> list[Wire]:
    """Wires an operation occupies: qubits, clbits, then the condition bit."""
    wires: list[Wire] = [("q", q) for q in op.qubits] + [("c", c) for c in op.clbits]
    if op.condition is not None and ("c", op.condition[0]) not in wires:
        wires.append(("c", op.condition[0]))
    return wires


# DAG circuit -----------------------------------------------------------------

class DAGCircuit:
    """Dependency DAG over quantum operations.

    Node ids are stable for the lifetime of the graph. Input/output nodes are
    allocated first, op node ids afterwards. Each op node carries an order key
    used to break ties in topological order: appended nodes get ``(nid,)``,
    nodes created by substitution inherit their parent's key extended with
    their index, so they sort in place of the node they replaced.
    """

    def __init__(self, n_qubits: int, n_classical: int = 0):
        self.n_qubits = n_qubits
        self.n_classical = n_classical
        self.metadata: dict = {}
        self._ops: dict[int, Operation] = {}
        self._key: dict[int, tuple] = {}
        self._in: dict[Wire, int] = {}
        self._out: dict[Wire, int] = {}
        self._io_wire: dict[int, Wire] = {}
        self._wire_pred: dict[Wire, dict[int, int]] = {}
        self._wire_succ: dict[Wire, dict[int, int]] = {}
        self._next_id = 0
        for w in self.wires():
            i, o = self._next_id, self._next_id + 1
            self._next_id += 2
            self._in[w], self._out[w] = i, o
            self._io_wire[i] = self._io_wire[o] = w
            self._wire_succ[w] = {i: o}
            self._wire_pred[w] = {o: i}

    def wires(self) -> list[Wire]:
        return [("q", q) for q in range(self.n_qubits)] + [("c", c) for c in range(self.n_classical)]

    def __len__(self) -> int: return len(self._ops)
    def __contains__(self, nid: int) -> bool: return nid in self._ops
    def op(self, nid: int) -> Operation: return self._ops[nid]
    def op_nodes(self) -> list[int]: return self.topological_order()
    def is_op_node(self, nid: int) -> bool: return nid in self._ops
    def input_node(self, wire: Wire) -> int: return self._in[wire]
    def output_node(self, wire: Wire) -> int: return self._out[wire]

    # Wire navigation ---------------------------------------------------------

    def _op_or_none(self, nid: int | None) -> int | None:
        return nid if nid is not None and nid in self._ops else None

    def next_on_wire(self, nid: int, wire: Wire) -> int | None:
        return self._op_or_none(self._wire_succ[wire].get(nid))
    def prev_on_wire(self, nid: int, wire: Wire) -> int | None:
        return self._op_or_none(self._wire_pred[wire].get(nid))
    def next_on_qubit(self, nid: int, q: int) -> int | None:
        return self.next_on_wire(nid, ("q", q))
    def prev_on_qubit(self, nid: int, q: int) -> int | None:
        return self.prev_on_wire(nid, ("q", q))
    def first_on_qubit(self, q: int) -> int | None:
        return self.next_on_wire(self._in[("q", q)], ("q", q))

    def terminal_node(self, wire: Wire) -> int | None:
        """The op node feeding the wire's output node, or None for an idle wire."""
        return self._op_or_none(self._wire_pred[wire][self._out[wire]])

    def last_on_qubit(self, q: int) -> int | None:
        return self.terminal_node(("q", q))

    def wire_ops(self, wire: Wire) -> list[int]:
        """Op nodes on a wire in program order."""
        out, cur = [], self._wire_succ[wire][self._in[wire]]
        while cur in self._ops:
            out.append(cur)
            cur = self._wire_succ[wire][cur]
        return out

    def predecessors(self, nid: int) -> list[int]:
        """Distinct op nodes immediately before nid on any of its wires."""
        seen: list[int] = []
        for w in op_wires(self._ops[nid]):
            p = self._wire_pred[w][nid]
            if p in self._ops and p not in seen: seen.append(p)
        return seen

    def successors(self, nid: int) -> list[int]:
        """Distinct op nodes immediately after nid on any of its wires."""
        seen: list[int] = []
        for w in op_wires(self._ops[nid]):
            s = self._wire_succ[w][nid]
            if s in self._ops and s not in seen: seen.append(s)
        return seen

    def is_successor_of_input(self, nid: int, q: int) -> bool:
        return self._wire_pred[("q", q)].get(nid) == self._in[("q", q)]

    def is_followed_by_output(self, nid: int, wire: Wire) -> bool:
        return self._wire_succ[wire].get(nid) == self._out[wire]

    # Mutation ----------------------------------------------------------------

    def _validate(self, op: Operation):
        g = op.gate
        if g.n_qubits and len(op.qubits) != g.n_qubits:
            raise ValidationError(f"{g.name} acts on {g.n_qubits} qubit(s), got {len(op.qubits)}", operation=op)
        if not op.qubits:
            raise ValidationError(f"{g.name} needs at least one qubit", operation=op)
        if len(op.params) != g.n_params:
            raise ValidationError(f"{g.name} takes {g.n_params} parameter(s), got {len(op.params)}", operation=op)
        if len(op.clbits) != g.n_clbits:
            raise ValidationError(f"{g.name} writes {g.n_clbits} clbit(s), got {len(op.clbits)}", operation=op)
        if len(set(op.qubits)) != len(op.qubits):
            raise ValidationError(f"{g.name} has duplicate qubits {op.qubits}", operation=op)
        for q in op.qubits:
            if not 0 <= q < self.n_qubits:
                raise ValidationError(f"Qubit {q} out of range for {self.n_qubits}-qubit circuit", operation=op)
        bits = list(op.clbits) + ([op.condition[0]] if op.condition is not None else [])
        for c in bits:
            if not 0 <= c < self.n_classical:
                raise ValidationError(f"Clbit {c} out of range for {self.n_classical} classical bits", operation=op)

    def add_op(self, op: Operation) -> int:
        """Append operation at the end of each of its wires."""
        self._validate(op)
        nid = self._next_id; self._next_id += 1
        self._ops[nid] = op
        self._key[nid] = (nid,)
        for w in op_wires(op):
            out = self._out[w]
            last = self._wire_pred[w][out]
            self._wire_succ[w][last] = nid
            self._wire_pred[w][nid] = last
            self._wire_succ[w][nid] = out
            self._wire_pred[w][out] = nid
        return nid

    def set_op(self, nid: int, op: Operation):
        """In-place op update. The new op must occupy the same wires."""
        if nid not in self._ops:
            raise StructuralError(f"Node {nid} is not an op node")
        if set(op_wires(op)) != set(op_wires(self._ops[nid])):
            raise StructuralError("set_op cannot change the wires of a node", operation=op)
        self._validate(op)
        self._ops[nid] = op

    def remove_op_node(self, nid: int):
        """Remove node, splicing predecessor to successor on every wire."""
        if nid not in self._ops:
            raise StructuralError(f"Node {nid} is not an op node")
        for w in op_wires(self._ops[nid]):
            p = self._wire_pred[w].pop(nid)
            s = self._wire_succ[w].pop(nid)
            self._wire_succ[w][p] = s
            self._wire_pred[w][s] = p
        del self._ops[nid], self._key[nid]

    remove_node = remove_op_node

    def substitute_node_with_dag(self, nid: int, sub: DAGCircuit) -> dict[int, int]:
        """Replace one op node with the ops of ``sub``.

        Sub qubit i maps to the node's i-th qubit, sub clbit j to its j-th clbit.
        A conditioned node passes its condition to every spliced op. Returns a
        map from sub node ids to the new node ids.
        """
        if nid not in self._ops:
            raise StructuralError(f"Node {nid} is not an op node")
        op = self._ops[nid]
        if sub.n_qubits != len(op.qubits) or sub.n_classical != len(op.clbits):
            raise StructuralError(
                f"Replacement has {sub.n_qubits}q/{sub.n_classical}c wires, node {op.name} has "
                f"{len(op.qubits)}q/{len(op.clbits)}c", operation=op)
        qmap, cmap = dict(enumerate(op.qubits)), dict(enumerate(op.clbits))
        children: list[Operation] = []
        for child in sub.topological_ops():
            cond = child.condition
            if cond is not None:
                cond = (cmap[cond[0]], cond[1])
            elif op.condition is not None and not child.gate.directive:
                cond = op.condition
            elif op.condition is not None:
                raise StructuralError("Cannot propagate a condition onto a directive", operation=op)
            children.append(child.replace(qubits=tuple(qmap[q] for q in child.qubits),
                                          clbits=tuple(cmap[c] for c in child.clbits), condition=cond))
        parent_wires = op_wires(op)
        for child in children:
            extra = set(op_wires(child)) - set(parent_wires)
            if extra:
                raise StructuralError(f"Replacement touches wires {sorted(extra)} outside the node", operation=child)
            self._validate(child)

        key = self._key[nid]
        tail = {w: self._wire_pred[w].pop(nid) for w in parent_wires}
        after = {w: self._wire_succ[w].pop(nid) for w in parent_wires}
        del self._ops[nid], self._key[nid]

        mapping: dict[int, int] = {}
        sub_ids = sub.topological_order()
        for i, child in enumerate(children):
            cid = self._next_id; self._next_id += 1
            self._ops[cid] = child
            self._key[cid] = key + (i,)
            for w in op_wires(child):
                t = tail[w]
                self._wire_succ[w][t] = cid
                self._wire_pred[w][cid] = t
                tail[w] = cid
            mapping[sub_ids[i]] = cid
        for w in parent_wires:
            self._wire_succ[w][tail[w]] = after[w]
            self._wire_pred[w][after[w]] = tail[w]
        return mapping

    def substitute_node_with_ops(self, nid: int, ops: list[Operation]) -> dict[int, int]:
        """Convenience wrapper: ``ops`` are expressed on the node's own qubit indices."""
        op = self._ops[nid]
        local = {q: i for i, q in enumerate(op.qubits)}
        clocal = {c: i for i, c in enumerate(op.clbits)}
        sub = DAGCircuit(len(op.qubits), len(op.clbits))
        for o in ops:
            if any(q not in local for q in o.qubits):
                raise StructuralError(f"Replacement op {o!r} uses qubits outside {op.qubits}", operation=o)
            cond = o.condition
            if cond is not None and cond[0] in clocal: cond = (clocal[cond[0]], cond[1])
            elif cond is not None and cond == op.condition: cond = None
            sub.add_op(o.replace(qubits=tuple(local[q] for q in o.qubits),
                                 clbits=tuple(clocal[c] for c in o.clbits), condition=cond))
        return self.substitute_node_with_dag(nid, sub)

    def _descendants_outside(self, block: set[int]) -> set[int]:
        reached: set[int] = set()
        stack = [s for n in block for s in self.successors(n) if s not in block]
        while stack:
            n = stack.pop()
            if n in reached: continue
            reached.add(n)
            stack.extend(s for s in self.successors(n))
        return reached

    def replace_block_with_op(self, nids, op: Operation) -> int:
        """Collapse a convex set of op nodes into one node carrying ``op``."""
        block = set(nids)
        if not block or any(n not in self._ops for n in block):
            raise StructuralError("Block must be a non-empty set of op nodes")
        if self._descendants_outside(block) & block:
            raise StructuralError("Block is not convex")
        block_wires: list[Wire] = []
        for n in sorted(block, key=self._key.__getitem__):
            for w in op_wires(self._ops[n]):
                if w not in block_wires: block_wires.append(w)
        if set(op_wires(op)) != set(block_wires):
            raise StructuralError(f"Op wires {op_wires(op)} do not match block wires {block_wires}", operation=op)
        self._validate(op)
        ends: dict[Wire, tuple[int, int]] = {}
        for w in block_wires:
            members = [n for n in block if w in op_wires(self._ops[n])]
            first = next(n for n in members if self._wire_pred[w][n] not in block)
            last = next(n for n in members if self._wire_succ[w][n] not in block)
            ends[w] = (self._wire_pred[w][first], self._wire_succ[w][last])
        key = min(self._key[n] for n in block)
        for n in block:
            for w in op_wires(self._ops[n]):
                self._wire_pred[w].pop(n); self._wire_succ[w].pop(n)
            del self._ops[n], self._key[n]
        nid = self._next_id; self._next_id += 1
        self._ops[nid] = op
        self._key[nid] = key
        for w, (p, s) in ends.items():
            self._wire_succ[w][p] = nid; self._wire_pred[w][nid] = p
            self._wire_succ[w][nid] = s; self._wire_pred[w][s] = nid
        return nid

    # Traversal ---------------------------------------------------------------

    def topological_order(self) -> list[int]:
        """Deterministic topological sort (Kahn's algorithm, smallest order key first)."""
        in_deg = {nid: len(self.predecessors(nid)) for nid in self._ops}
        ready = [(self._key[nid], nid) for nid, d in in_deg.items() if d == 0]
        heapq.heapify(ready)
        order: list[int] = []
        while ready:
            _, nid = heapq.heappop(ready)
            order.append(nid)
            for s in self.successors(nid):
                in_deg[s] -= 1
                if in_deg[s] == 0: heapq.heappush(ready, (self._key[s], s))
        if len(order) != len(self._ops):
            raise StructuralError("Graph contains a cycle")
        return order

    def topological_ops(self) -> list[Operation]:
        """Operations in deterministic topological order."""
        return [self._ops[nid] for nid in self.topological_order()]

    def depth(self) -> int:
        """Circuit depth (longest path through DAG)."""
        if not self._ops: return 0
        dist: dict[int, int] = {}
        for nid in self.topological_order():
            dist[nid] = max((dist[p] for p in self.predecessors(nid)), default=0) + 1
        return max(dist.values())

    def layers(self) -> list[list[int]]:
        """Group op nodes into parallel execution layers (ASAP)."""
        if not self._ops: return []
        layer_of: dict[int, int] = {}
        order = self.topological_order()
        for nid in order:
            layer_of[nid] = max((layer_of[p] + 1 for p in self.predecessors(nid)), default=0)
        result: list[list[int]] = [[] for _ in range(max(layer_of.values()) + 1)]
        for nid in order:
            result[layer_of[nid]].append(nid)
        return result

    def count_ops(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for op in self._ops.values(): counts[op.name] = counts.get(op.name, 0) + 1
        return counts

    def num_2q(self) -> int:
        return sum(1 for op in self._ops.values() if len(op.qubits) == 2 and not op.gate.directive)

    def fingerprint(self) -> int:
        """Hash of the op sequence; equal graphs hash equal."""
        return hash((self.n_qubits, self.n_classical, tuple(self.topological_ops())))

    # Construction ------------------------------------------------------------

    def copy_empty_like(self, n_qubits: int | None = None) -> DAGCircuit:
        dag = DAGCircuit(self.n_qubits if n_qubits is None else n_qubits, self.n_classical)
        dag.metadata = dict(self.metadata)
        return dag

    def copy(self) -> DAGCircuit:
        dag = self.copy_empty_like()
        for op in self.topological_ops(): dag.add_op(op)
        return dag

    def reverse_ops(self) -> DAGCircuit:
        """Time-reversed copy (gates are not inverted). Used by bidirectional layout search."""
        dag = self.copy_empty_like()
        for op in reversed(self.topological_ops()): dag.add_op(op)
        return dag

    @staticmethod
    def from_circuit(circuit: Circuit) -> DAGCircuit:
        """Build DAG from flat Circuit."""
        dag = DAGCircuit(circuit.n_qubits, circuit.n_classical)
        for op in circuit.ops: dag.add_op(op)
        return dag

    def to_circuit(self) -> Circuit:
        """Linearize DAG back to Circuit."""
        c = Circuit(self.n_qubits, self.n_classical)
        c.ops = self.topological_ops()
        return c


def _width(ops: list[Operation]) -> tuple[int, int]:
    nq = max((q + 1 for op in ops for q in op.qubits), default=0)
    nc = max((c + 1 for op in ops for c in list(op.clbits) + ([op.condition[0]] if op.condition else [])), default=0)
    return nq, nc


def ops_to_dag(ops: list[Operation], n_qubits: int | None = None, n_classical: int | None = None) -> DAGCircuit:
    nq, nc = _width(ops)
    dag = DAGCircuit(nq if n_qubits is None else n_qubits, nc if n_classical is None else n_classical)
    for op in ops: dag.add_op(op)
    return dag


def dag_to_ops(dag: DAGCircuit) -> list[Operation]:
    return dag.topological_ops()


__all__ = ["DAGCircuit", "Wire", "commutes", "semantic_eq", "op_wires", "ops_to_dag", "dag_to_ops",
           "DIAGONAL_GATES"]
