"""Compilation report for explainability, built from the per-pass callback."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .dag import DAGCircuit
    from .ir import Circuit, Operation
    from .target import Target


@dataclass
class PassMetrics:
    """Metrics captured after a single pass."""
    name: str
    gates: int
    two_q: int
    depth: int
    time: float = 0.0
    ops: list[str] | None = None


@dataclass
class CompileReport:
    """Compilation report with pass-by-pass metrics."""
    n_qubits: int
    passes: list[PassMetrics]
    swaps: int
    qubit_map: dict[int, int] = field(default_factory=dict)
    final_map: dict[int, int] = field(default_factory=dict)
    target: str = ""
    basis: list[str] = field(default_factory=list)
    seed: int | None = None
    unitary_preserved: bool = True

    @property
    def total_time(self) -> float:
        return sum(m.time for m in self.passes[1:])

    def to_text(self, verbosity: int = 2) -> str:
        lines = [
            "=" * 40, "  TinyTranspiler Compilation Report", "=" * 40, "",
            "SUMMARY",
            f"  Qubits: {self.n_qubits}",
            f"  Input:  {self.passes[0].gates} gates  Output: {self.passes[-1].gates} gates",
            f"  2Q:     {self.passes[0].two_q} -> {self.passes[-1].two_q}",
            f"  SWAPs:  {self.swaps} inserted",
            f"  Time:   {self.total_time * 1000:.2f} ms",
        ]
        if self.target: lines.append(f"  Target: {self.target}")
        if self.basis: lines.append(f"  Basis:  {', '.join(self.basis)}")
        if self.seed is not None: lines.append(f"  Seed:   {self.seed}")
        if not self.unitary_preserved: lines.append("  Note:   measurement-only passes ran; unitary not preserved")
        if verbosity < 2: return "\n".join(lines)

        lines += ["", "PASSES", "  Name                        Gates  2Q  Depth   ms", "  " + "-" * 50]
        lines += [f"  {m.name:<26} {m.gates:>5} {m.two_q:>4} {m.depth:>5} {m.time * 1000:>6.2f}"
                  for m in self.passes]

        if self.qubit_map:
            lines += ["", "MAPPING"]
            lines += [f"  q{l}->p{p}" + (f" (ends p{self.final_map[l]})" if self.final_map.get(l, p) != p else "")
                      for l, p in sorted(self.qubit_map.items())]

        if verbosity >= 3:
            lines += ["", "OPS"]
            for m in self.passes:
                if m.ops:
                    lines += [f"  [{m.name}] {', '.join(m.ops)}"]
        return "\n".join(lines)


def _fmt(op: Operation) -> str:
    q = ",".join(map(str, op.qubits))
    if op.params and all(isinstance(p, float) for p in op.params):
        return f"{op.name}({q},{','.join(f'{p:.2f}' for p in op.params)})"
    return f"{op.name}({q},{','.join(map(repr, op.params))})" if op.params else f"{op.name}({q})"


def collect_metrics(dag: DAGCircuit, name: str, time: float = 0.0, with_ops: bool = False) -> PassMetrics:
    return PassMetrics(name, len(dag), dag.num_2q(), dag.depth(), time,
                       [_fmt(op) for op in dag.topological_ops()] if with_ops else None)


class ReportCollector:
    """Pass-manager callback recording metrics after every pass.

    Forwards each call to ``callback`` when one is given, so a user callback
    and the report can be used together.
    """

    def __init__(self, dag: DAGCircuit, verbosity: int = 2, callback=None):
        self.with_ops = verbosity >= 3
        self.callback = callback
        self.passes = [collect_metrics(dag, "input", with_ops=self.with_ops)]

    def __call__(self, pass_, dag, time, property_set, count):
        self.passes.append(collect_metrics(dag, pass_.name, time, self.with_ops))
        if self.callback is not None:
            self.callback(pass_=pass_, dag=dag, time=time, property_set=property_set, count=count)


def build_report(input_circ: Circuit, output: Circuit, passes: list[PassMetrics], swaps: int,
                 target: Target, seed: int | None = None, unitary_preserved: bool = True) -> CompileReport:
    layout = output.layout
    n = input_circ.n_qubits
    return CompileReport(
        n, passes, swaps,
        {i: layout.initial.logical_to_phys(i) for i in range(n)} if layout else {},
        {i: layout.final.logical_to_phys(i) for i in range(n)} if layout else {},
        target.name, sorted(target.basis_gates), seed, unitary_preserved)
