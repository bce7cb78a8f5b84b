"""
Static include flattening with per-file symbol prefixes.
"""

from recombinator.inliner.renaming import (
    DefinedNames, GlobalRenamer, NameCollector, PrefixApplier, collect_names,
)
from recombinator.inliner.inliner import Inliner, resolve_include_expr, resolve_path

__all__ = [
    'DefinedNames', 'GlobalRenamer', 'NameCollector', 'PrefixApplier', 'collect_names',
    'Inliner', 'resolve_include_expr', 'resolve_path',
]
