"""
Pass contract and pass managers.

Contains:
    - PropertySet: dict returning None for missing keys
    - BasePass / AnalysisPass / TransformationPass: the pass contract
    - ConditionalController, DoWhileController: flow control over pass lists
    - PassManager: runs a flat task list
    - StagedPassManager: init -> layout -> routing -> translation -> optimization -> scheduling

Analysis passes read the graph and write the property set. Transformation
passes may rewrite the graph (in place or by returning a new one) and only
see a read-only view of the property set.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Union

from .dag import DAGCircuit
from .exceptions import TranspilerError, TranspilerTimeoutError
from .ir import Circuit

logger = logging.getLogger(__name__)

STAGES = ("init", "layout", "routing", "translation", "optimization", "scheduling")


class PropertySet(dict):
    """A default dictionary-like object."""

    def __missing__(self, key):
        return None


class _FencedPropertySet(PropertySet):
    """Read-only view handed to transformation passes."""

    def __init__(self, wrapped: PropertySet, owner: str):
        super().__init__(wrapped)
        self._owner = owner

    def _deny(self, *args, **kwargs):
        raise TranspilerError(f"Transformation pass {self._owner} cannot write the property set")

    __setitem__ = __delitem__ = __ior__ = update = setdefault = pop = popitem = clear = _deny


class BasePass:
    """Base class for transpiler passes."""

    preserves_unitary: bool = True

    def __init__(self):
        self.property_set: PropertySet = PropertySet()

    @property
    def name(self) -> str:
        return type(self).__name__

    def run(self, dag: DAGCircuit):
        raise NotImplementedError

    @property
    def is_transformation_pass(self) -> bool: return isinstance(self, TransformationPass)

    @property
    def is_analysis_pass(self) -> bool: return isinstance(self, AnalysisPass)

    def __call__(self, inp, property_set: PropertySet | dict | None = None):
        """Run the pass standalone on a Circuit or DAGCircuit.

        Returns the same type it was given. An analysis pass writes into
        ``property_set`` and returns its input.
        """
        ps = property_set if isinstance(property_set, PropertySet) else PropertySet(property_set or {})
        pm = PassManager([self])
        out = pm.run(inp, property_set=ps)
        if property_set is not None and not isinstance(property_set, PropertySet):
            property_set.update(ps)
        return out

    def __repr__(self):
        return f"{self.name}()"


class AnalysisPass(BasePass):
    """Reads the graph, writes the property set. Must not mutate the graph."""


class TransformationPass(BasePass):
    """Rewrites the graph. May read, never write, the property set."""


# Flow controllers --------------------------------------------------------------

Task = Union[BasePass, "FlowController"]


class FlowController:
    def __init__(self, passes: Iterable[Task]):
        if isinstance(passes, (BasePass, FlowController)):
            passes = [passes]
        self.passes: list[Task] = list(passes)

    def iter_rounds(self, property_set: PropertySet):
        """Yield once per round of the wrapped passes."""
        yield


class ConditionalController(FlowController):
    """Runs the passes once if ``condition(property_set)`` holds when reached."""

    def __init__(self, passes: Iterable[Task], condition: Callable[[PropertySet], bool]):
        super().__init__(passes)
        self.condition = condition

    def iter_rounds(self, property_set):
        if self.condition(property_set):
            yield


class DoWhileController(FlowController):
    """Runs the passes, then repeats while ``do_while(property_set)`` holds.

    Stops silently after ``max_iteration`` rounds.
    """

    def __init__(self, passes: Iterable[Task], do_while: Callable[[PropertySet], bool], max_iteration: int = 1000):
        super().__init__(passes)
        self.do_while = do_while
        self.max_iteration = max_iteration

    def iter_rounds(self, property_set):
        for _ in range(self.max_iteration):
            yield
            if not self.do_while(property_set):
                return
        logger.info("DoWhileController stopped after max_iteration=%d rounds", self.max_iteration)


# Runner ----------------------------------------------------------------------

class _Runner:
    """Executes tasks for one pipeline run: deadline, timing, logging, callback."""

    def __init__(self, property_set: PropertySet, callback=None, deadline: float | None = None):
        self.property_set = property_set
        self.callback = callback
        self.deadline = deadline
        self.count = 0
        self.stage: str | None = None

    def run_tasks(self, tasks: Iterable[Task], dag: DAGCircuit) -> DAGCircuit:
        for task in tasks:
            if isinstance(task, FlowController):
                for _ in task.iter_rounds(self.property_set):
                    dag = self.run_tasks(task.passes, dag)
            else:
                dag = self.run_pass(task, dag)
        return dag

    def run_pass(self, pass_: BasePass, dag: DAGCircuit) -> DAGCircuit:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise TranspilerTimeoutError(f"Deadline exceeded before {pass_.name}", stage=self.stage,
                                         pass_name=pass_.name)
        if pass_.is_transformation_pass:
            pass_.property_set = _FencedPropertySet(self.property_set, pass_.name)
        else:
            pass_.property_set = self.property_set
        start = time.perf_counter()
        try:
            result = pass_.run(dag)
        except TranspilerError as err:
            if err.stage is None: err.stage = self.stage
            if err.pass_name is None: err.pass_name = pass_.name
            raise
        finally:
            pass_.property_set = self.property_set
        elapsed = time.perf_counter() - start
        logger.debug("Pass: %s - %.5f (ms)", pass_.name, elapsed * 1000)
        if pass_.is_transformation_pass and result is not None:
            if not isinstance(result, DAGCircuit):
                raise TranspilerError(f"Transformation pass {pass_.name} returned {type(result).__name__}",
                                      stage=self.stage)
            dag = result
        if not pass_.preserves_unitary:
            self.property_set["unitary_preserved"] = False
        if self.callback is not None:
            self.callback(pass_=pass_, dag=dag, time=elapsed,
                          property_set=PropertySet(self.property_set), count=self.count)
        self.count += 1
        return dag


def _to_dag(inp) -> tuple[DAGCircuit, bool]:
    if isinstance(inp, Circuit):
        return DAGCircuit.from_circuit(inp), True
    if isinstance(inp, DAGCircuit):
        return inp, False
    raise TranspilerError(f"Expected Circuit or DAGCircuit, got {type(inp).__name__}")


class PassManager:
    """Runs a flat list of passes and flow controllers."""

    def __init__(self, passes: Iterable[Task] = ()):
        self.passes: list[Task] = list(passes)
        self.property_set = PropertySet()

    def append(self, task: Task) -> PassManager:
        self.passes.append(task)
        return self

    def run(self, inp, property_set: PropertySet | None = None, callback=None, deadline: float | None = None):
        """Run on a Circuit or DAGCircuit; returns the same type."""
        dag, from_circuit = _to_dag(inp)
        self.property_set = property_set if property_set is not None else PropertySet()
        runner = _Runner(self.property_set, callback, deadline)
        dag = runner.run_tasks(self.passes, dag)
        return dag.to_circuit() if from_circuit else dag


class StagedPassManager:
    """Runs the six pipeline stages strictly in order."""

    def __init__(self, stages: dict[str, list[Task]] | None = None):
        stages = stages or {}
        unknown = set(stages) - set(STAGES)
        if unknown:
            raise TranspilerError(f"Unknown stage(s): {sorted(unknown)}")
        self.stages: dict[str, list[Task]] = {s: list(stages.get(s, [])) for s in STAGES}
        self.property_set = PropertySet()

    def __getitem__(self, stage: str) -> list[Task]:
        return self.stages[stage]

    def passes(self) -> list[tuple[str, list[Task]]]:
        return [(s, self.stages[s]) for s in STAGES]

    def run(self, inp, property_set: PropertySet | None = None, callback=None, deadline: float | None = None):
        dag, from_circuit = _to_dag(inp)
        self.property_set = property_set if property_set is not None else PropertySet()
        self.property_set["unitary_preserved"] = True
        runner = _Runner(self.property_set, callback, deadline)
        for stage in STAGES:
            runner.stage = stage
            logger.debug("Stage: %s (%d task(s))", stage, len(self.stages[stage]))
            dag = runner.run_tasks(self.stages[stage], dag)
        return dag.to_circuit() if from_circuit else dag
