"""
PHP front end: tree model, parser and pretty-printer.
"""

from recombinator.syntax.nodes import (
    NO_POSITION, Node, Position, SCHEMA, clone_list, dump, equal, walk, walk_scope,
)
from recombinator.syntax.parser import parse, parse_expression, parse_or_raise
from recombinator.syntax.printer import Printer, print_expr, print_file, print_nodes

__all__ = [
    'NO_POSITION', 'Node', 'Position', 'SCHEMA', 'clone_list', 'dump', 'equal',
    'walk', 'walk_scope',
    'parse', 'parse_expression', 'parse_or_raise',
    'Printer', 'print_expr', 'print_file', 'print_nodes',
]
