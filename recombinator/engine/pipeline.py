"""
Fixed-Point Pipeline
====================

Drives the pass catalog to a fixed point.

One *round* applies every configured pass in canonical order. Each pass
application is

    connecting pre-pass → the pass's traversal → pending-flag sweep

and is judged by printing the program before and after: a pass changed the
tree iff the printed code differs. Rounds repeat while any pass changed
something, up to ``max_rounds``. The readability stage runs once after the
main loop.

    pipeline = Pipeline(REGISTRY, config)
    result = pipeline.run(nodes)
    if result.still_changing:
        ...  # round cap reached
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional

from ..analysis.classifier import SideEffectClassifier
from ..config import OptimizerConfig
from ..domain.scope_store import ScopeStore
from ..sandbox.sandbox import Sandbox
from ..syntax.nodes import Node
from ..syntax.printer import print_nodes
from .connecting import connect
from .diff import PassDiff, count_changes, make_diff
from .registry import STAGE_MAIN, STAGE_READABILITY, PassRegistry
from .traverser import Traverser, sweep

logger = logging.getLogger(__name__)


class PipelineStatus(Enum):
    CONVERGED = auto()       # a full round changed nothing
    MAX_ROUNDS = auto()      # round cap reached while passes still changed code


@dataclass
class PassContext:
    """Per-run state shared by all passes. Create a fresh one for every run."""
    config: OptimizerConfig = field(default_factory=OptimizerConfig)
    store: ScopeStore = field(default_factory=ScopeStore)
    classifier: Optional[SideEffectClassifier] = None
    sandbox: Optional[Sandbox] = None
    path: Optional[str] = None
    stats: Dict[str, Counter] = field(default_factory=dict)

    def __post_init__(self):
        if self.classifier is None:
            self.classifier = SideEffectClassifier(self.config.unknown_effect)
        if self.sandbox is None:
            self.sandbox = Sandbox(cache_size=self.config.cache_size,
                                   timeout=self.config.sandbox_timeout)

    def count(self, pass_id: str, key: str, n: int = 1) -> None:
        self.stats.setdefault(pass_id, Counter())[key] += n


@dataclass
class PipelineResult:
    nodes: List[Node]
    status: PipelineStatus
    rounds: int
    pass_changes: Dict[str, int] = field(default_factory=dict)
    diffs: List[PassDiff] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is PipelineStatus.CONVERGED

    @property
    def still_changing(self) -> bool:
        return self.status is PipelineStatus.MAX_ROUNDS


class Pipeline:
    """
    Fixed-point driver over a :class:`PassRegistry`.

    Args:
        registry: pass table (``recombinator.passes.REGISTRY`` in practice)
        config: run configuration; selects passes, round cap and diagnostics
    """

    def __init__(self, registry: PassRegistry, config: Optional[OptimizerConfig] = None):
        self.registry = registry
        self.config = config or OptimizerConfig()
        self.main_passes = registry.resolve(self.config.passes, STAGE_MAIN)
        self.readability_passes = registry.resolve(self.config.readability_passes,
                                                   STAGE_READABILITY)

    def run(self, nodes: List[Node], context: Optional[PassContext] = None) -> PipelineResult:
        context = context or PassContext(config=self.config)
        pass_changes: Dict[str, int] = {}
        diffs: List[PassDiff] = []
        status = PipelineStatus.MAX_ROUNDS
        rounds = 0

        for round_no in range(1, self.config.max_rounds + 1):
            rounds = round_no
            changed = False
            for pass_id in self.main_passes:
                nodes, lines = self.apply_pass(pass_id, nodes, context, round_no, diffs)
                if lines:
                    changed = True
                    pass_changes[pass_id] = pass_changes.get(pass_id, 0) + lines
            logger.debug("Round %d finished, changed=%s", round_no, changed)
            if not changed:
                status = PipelineStatus.CONVERGED
                break

        if status is PipelineStatus.MAX_ROUNDS:
            logger.warning("No fixed point after %d rounds; keeping the last state", rounds)
        else:
            logger.info("Converged after %d round(s)", rounds)

        if self.config.readability:
            for pass_id in self.readability_passes:
                nodes, lines = self.apply_pass(pass_id, nodes, context, rounds, diffs)
                if lines:
                    pass_changes[pass_id] = pass_changes.get(pass_id, 0) + lines

        return PipelineResult(nodes=nodes, status=status, rounds=rounds,
                              pass_changes=pass_changes, diffs=diffs)

    def apply_pass(self, pass_id: str, nodes: List[Node], context: PassContext,
                   round_no: int = 1, diffs: Optional[List[PassDiff]] = None):
        """Apply one pass. Returns ``(nodes, changed line count)``."""
        before = print_nodes(nodes)
        nodes = connect(nodes)
        visitor = self.registry.create(pass_id, context)
        nodes = Traverser(visitor).traverse(nodes)
        nodes = sweep(nodes)
        after = print_nodes(nodes)
        if before == after:
            return nodes, 0
        added, removed = count_changes(before, after)
        lines = max(added + removed, 1)
        logger.debug("Pass %s changed %d line(s) in round %d", pass_id, lines, round_no)
        if self.config.diagnostics and diffs is not None:
            diffs.append(make_diff(pass_id, round_no, before, after))
        return nodes, lines
