"""
Recombinator Facade
===================

One call from PHP source to optimized PHP source:

    >>> from recombinator import Recombinator
    >>> report = Recombinator().optimize_source('<?php $a = 5; $b = 10; echo $a + $b;')
    >>> print(report.code)
    <?php

    echo 15;

``optimize_file`` first flattens the program's static includes into one
tree; ``optimize_source`` works on a single snippet. Both return an
:class:`OptimizationReport`.
"""

import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import OptimizerConfig
from .engine.diff import PassDiff
from .engine.pipeline import PassContext, Pipeline
from .inliner.inliner import Inliner
from .passes import REGISTRY
from .syntax.nodes import Node, walk
from .syntax.parser import parse_or_raise
from .syntax.printer import print_file

logger = logging.getLogger(__name__)


@dataclass
class OptimizationReport:
    """Result of one optimization run."""
    code: str
    rounds: int
    converged: bool
    still_changing: bool
    pass_changes: Dict[str, int] = field(default_factory=dict)
    diffs: List[PassDiff] = field(default_factory=list)
    sandbox_stats: Dict[str, Any] = field(default_factory=dict)
    effect_stats: Dict[str, int] = field(default_factory=dict)
    pass_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    inlined_files: List[str] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list, repr=False)

    @property
    def changed(self) -> bool:
        return bool(self.pass_changes)

    def summary(self) -> str:
        state = 'converged' if self.converged else 'round cap reached'
        total = sum(self.pass_changes.values())
        return (f'{self.rounds} round(s), {state}; {total} changed line(s) '
                f'over {len(self.pass_changes)} pass(es)')


class Recombinator:
    """
    Source-to-source optimizer for PHP programs.

    Args:
        config: run configuration (defaults to :class:`OptimizerConfig`)
    """

    def __init__(self, config: Optional[OptimizerConfig] = None):
        self.config = config or OptimizerConfig()
        self.pipeline = Pipeline(REGISTRY, self.config)

    def optimize_file(self, path: str) -> OptimizationReport:
        """Optimize a program given by its entry file, includes inlined.

        Raises ``IncludeError`` if the entry file cannot be read and
        ``ParseError`` if it is not valid PHP.
        """
        inliner = Inliner(path)
        nodes = inliner.inline()
        report = self._optimize(nodes, os.path.abspath(path))
        report.inlined_files = list(inliner.inlined_files)
        return report

    def optimize_source(self, code: str, path: Optional[str] = None) -> OptimizationReport:
        """Optimize one snippet of PHP source; includes are left untouched."""
        nodes = parse_or_raise(code, path)
        return self._optimize(nodes, path)

    def optimize_nodes(self, nodes: List[Node]) -> OptimizationReport:
        return self._optimize(nodes, None)

    def _optimize(self, nodes: List[Node], path: Optional[str]) -> OptimizationReport:
        context = PassContext(config=self.config, path=path)
        result = self.pipeline.run(nodes, context)
        report = OptimizationReport(
            code=print_file(result.nodes),
            rounds=result.rounds,
            converged=result.converged,
            still_changing=result.still_changing,
            pass_changes=dict(result.pass_changes),
            diffs=list(result.diffs),
            sandbox_stats=context.sandbox.cache_stats(),
            effect_stats=self._effect_stats(result.nodes, context),
            pass_stats={k: dict(v) for k, v in context.stats.items()},
            nodes=result.nodes,
        )
        logger.info("Optimized %s: %s", path or '<source>', report.summary())
        return report

    @staticmethod
    def _effect_stats(nodes: List[Node], context: PassContext) -> Dict[str, int]:
        """Side-effect kind of every statement of the final program."""
        counts = Counter(context.classifier.classify(n).value
                         for n in walk(nodes) if n.is_statement())
        return dict(counts)


def optimize(code: str, config: Optional[OptimizerConfig] = None) -> str:
    """Optimized source of a PHP snippet."""
    return Recombinator(config).optimize_source(code).code
