"""
Scheduling analysis: start times from calibrated durations.

Contains:
    - ASAPSchedule: Every op starts as soon as its wires are free
    - ALAPSchedule: Every op starts as late as possible without growing the total

Both write ``property_set["node_start_time"]`` ({node id: start}) and
``property_set["schedule_duration"]``. Times are in the target's duration unit.
Ops without a calibrated duration take zero time and are reported once with a
warning. rz is a virtual frame change: it takes zero time when uncalibrated and
is never reported.
"""
from __future__ import annotations

import logging

from ..dag import DAGCircuit, op_wires
from ..passmanager import AnalysisPass
from ..target import Target

logger = logging.getLogger(__name__)

_ZERO_LENGTH = frozenset({"barrier", "rz"})


class _BaseSchedule(AnalysisPass):

    def __init__(self, target: Target):
        super().__init__()
        self.target = target

    def _durations(self, dag: DAGCircuit, order: list[int]) -> dict[int, float]:
        out, missing = {}, set()
        for nid in order:
            op = dag.op(nid)
            d = None if op.name == "barrier" else self.target.duration(op.name, op.qubits)
            if d is None and op.name not in _ZERO_LENGTH:
                missing.add(op.name)
            out[nid] = d or 0.0
        if missing:
            logger.warning("No duration for %s on some qubits; scheduling them as zero-length",
                           ", ".join(sorted(missing)))
        return out

    def _schedule(self, dag: DAGCircuit, order: list[int], durations: dict[int, float]) -> dict[int, float]:
        """ASAP over ``order``; returns node -> start."""
        free: dict = {}
        start = {}
        for nid in order:
            wires = op_wires(dag.op(nid))
            t = max((free.get(w, 0.0) for w in wires), default=0.0)
            start[nid] = t
            for w in wires: free[w] = t + durations[nid]
        return start


class ASAPSchedule(_BaseSchedule):
    """ASAP scheduling."""

    def run(self, dag):
        order = dag.topological_order()
        durations = self._durations(dag, order)
        start = self._schedule(dag, order, durations)
        self.property_set["node_start_time"] = start
        self.property_set["schedule_duration"] = max((start[n] + durations[n] for n in order), default=0.0)


class ALAPSchedule(_BaseSchedule):
    """ALAP scheduling: ASAP on the reversed graph, mirrored in time."""

    def run(self, dag):
        order = dag.topological_order()
        durations = self._durations(dag, order)
        rev = self._schedule(dag, order[::-1], durations)
        total = max((rev[n] + durations[n] for n in order), default=0.0)
        self.property_set["node_start_time"] = {n: total - rev[n] - durations[n] for n in order}
        self.property_set["schedule_duration"] = total
