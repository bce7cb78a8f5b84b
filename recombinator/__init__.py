"""
Recombinator: Source-to-Source Optimizer for PHP
================================================

Recombinator rewrites a PHP program into an equivalent, smaller and more
direct one. The program's static includes are flattened into one tree,
then a catalog of rewrite passes runs to a fixed point: constant folding,
scalar propagation, single-use and function inlining, object inlining,
compile-time evaluation of pure builtins in a sandbox, dead definition
removal. A final readability stage restructures what is left.

Core Components:
    - syntax: PHP parser (lark) and pretty-printer
    - engine: visitor protocol, traverser and fixed-point pipeline
    - analysis: side-effect lattice and classifier, complexity metrics,
      dependency graph, abstraction recovery
    - sandbox: restricted evaluator with PHP value semantics and a cache
    - inliner: include flattening with per-file symbol prefixes
    - passes: the rewrite-pass catalog

Usage:
    >>> import recombinator
    >>> report = recombinator.Recombinator().optimize_file('app/index.php')
    >>> print(report.code)

    >>> recombinator.optimize('<?php echo 2 + 3 * 4;')
    '<?php\\n\\necho 14;\\n'
"""

__version__ = "1.0.0"
__author__ = "Recombinator Team"

# config pulls in analysis.effects, which recombinator.domain needs first
from recombinator.config import OptimizerConfig
from recombinator.errors import (
    ConfigError, IncludeError, ParseError, RecombinatorError, TraversalError,
)
from recombinator.result import Err, Ok, Option, Result
from recombinator.analysis import (
    EffectKind, SideEffectClassifier, ComplexityMetrics, SideEffectSeparator,
    AbstractionRecovery, StructureAdvisor,
)
from recombinator.domain import ScopeStore
from recombinator.syntax import Node, parse, parse_or_raise, print_file
from recombinator.engine import PassContext, Pipeline, PipelineResult
from recombinator.sandbox import Sandbox, SandboxError
from recombinator.inliner import Inliner
from recombinator.passes import REGISTRY
from recombinator.optimizer import OptimizationReport, Recombinator, optimize

__all__ = [
    '__version__',
    'OptimizerConfig',
    'ConfigError', 'IncludeError', 'ParseError', 'RecombinatorError', 'TraversalError',
    'Err', 'Ok', 'Option', 'Result',
    'EffectKind', 'SideEffectClassifier', 'ComplexityMetrics', 'SideEffectSeparator',
    'AbstractionRecovery', 'StructureAdvisor',
    'ScopeStore',
    'Node', 'parse', 'parse_or_raise', 'print_file',
    'PassContext', 'Pipeline', 'PipelineResult',
    'Sandbox', 'SandboxError',
    'Inliner',
    'REGISTRY',
    'OptimizationReport', 'Recombinator', 'optimize',
]
