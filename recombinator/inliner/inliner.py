"""
Include Inliner
===============

Flattens a program and its statically included files into one tree.

    inliner = Inliner('app/index.php')
    stmts = inliner.inline()

Every top-level ``include``/``require`` (and their ``_once`` forms) whose path
is a string literal, ``__DIR__``, or a concatenation of those is replaced by
the statements of the target file. Each inlined file gets a prefix
(``f1_``, ``f2_``, ...) that is applied to the symbols it declares and to its
own references to them. References from other files are fixed by one global
rename once the whole tree is assembled, because a file may use symbols of a
file that is inlined after it.

Includes that cannot be resolved are left in place. Files that declare a
namespace or ``return`` at top level are not inlined either: their meaning
depends on being a separate file.
"""

import logging
import os
from typing import Callable, Dict, List, Optional, Set

from ..errors import IncludeError, ParseError
from ..engine.traverser import Traverser
from ..syntax.nodes import Node, walk
from ..syntax.parser import parse, parse_or_raise
from ..syntax.printer import print_file
from .renaming import DefinedNames, GlobalRenamer, PrefixApplier, collect_names

logger = logging.getLogger(__name__)

_ONCE_KINDS = frozenset({'include_once', 'require_once'})


def _read(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as fh:
        return fh.read()


def resolve_path(path: str, base_dir: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(base_dir, path)


def resolve_include_expr(expr: Optional[Node], base_dir: str) -> Optional[str]:
    """Static value of an include path expression, or None."""
    if expr is None:
        return None
    if expr.kind == 'String':
        return expr.value
    if expr.kind == 'MagicConst' and expr.name == '__DIR__':
        return base_dir
    if expr.kind == 'BinaryOp' and expr.op == '.':
        left = resolve_include_expr(expr.left, base_dir)
        right = resolve_include_expr(expr.right, base_dir)
        if left is not None and right is not None:
            return left + right
    return None


def _include_of(stmt: Node) -> Optional[Node]:
    if stmt.kind == 'Expression' and stmt.expr is not None and stmt.expr.kind == 'Include':
        return stmt.expr
    return None


class Inliner:
    """
    Args:
        entry_point: path of the program's main file
        reader: function returning a file's text (``open`` by default)
    """

    def __init__(self, entry_point: str, reader: Optional[Callable[[str], str]] = None):
        self.entry_point = entry_point
        self.reader = reader or _read
        self.file_index = 0
        self.included_once: Set[str] = set()
        self.inlined_files: List[str] = []
        self.unresolved: List[str] = []
        self.function_renames: Dict[str, str] = {}
        self.class_renames: Dict[str, str] = {}
        self.constant_renames: Dict[str, str] = {}
        self._active: List[str] = []

    def inline(self) -> List[Node]:
        """The flattened program. Raises for an unreadable or unparseable entry file."""
        try:
            source = self.reader(self.entry_point)
        except OSError as exc:
            raise IncludeError(self.entry_point, exc.strerror or str(exc)) from exc
        stmts = parse_or_raise(source, self.entry_point)
        entry_names = collect_names(stmts)

        self._active = [os.path.realpath(self.entry_point)]
        stmts = self._process(stmts, os.path.dirname(os.path.abspath(self.entry_point)))
        stmts = self._apply_global_renames(stmts, entry_names)
        logger.info("Inlined %d file(s) into %s", len(self.inlined_files), self.entry_point)
        return stmts

    def inline_code(self) -> str:
        return print_file(self.inline())

    def _process(self, stmts: List[Node], base_dir: str) -> List[Node]:
        result: List[Node] = []
        for stmt in stmts:
            include = _include_of(stmt)
            if include is not None:
                inlined = self._inline_include(include, base_dir)
                if inlined is not None:
                    if stmt.comments and inlined:
                        inlined[0].set_attr('comments', stmt.comments + inlined[0].comments)
                    result.extend(inlined)
                    continue
            result.append(stmt)
        return result

    def _inline_include(self, node: Node, base_dir: str) -> Optional[List[Node]]:
        path = resolve_include_expr(node.expr, base_dir)
        if path is None:
            self.unresolved.append('<dynamic>')
            logger.debug("Include path is not static, left as is")
            return None
        path = resolve_path(path, base_dir)
        if not os.path.isfile(path):
            self.unresolved.append(path)
            logger.debug("Included file %s does not exist, left as is", path)
            return None

        real_path = os.path.realpath(path)
        if self._is_once(node) and real_path in self.included_once:
            return []
        if real_path in self._active:
            logger.warning("Recursive include of %s left as is", path)
            return None

        try:
            source = self.reader(path)
        except OSError as exc:
            self.unresolved.append(path)
            logger.warning("Cannot read included file %s: %s", path, exc)
            return None
        parsed = parse(source, path)
        if parsed.is_err():
            error: ParseError = parsed.error
            logger.warning("Included file is not valid PHP, inlined as empty: %s", error.describe())
            self.included_once.add(real_path)
            return []
        stmts = parsed.unwrap()
        if not self._inlinable(stmts):
            logger.info("Not inlining %s: namespace or top-level return", path)
            return None

        self.included_once.add(real_path)
        self.file_index += 1
        prefix = f'f{self.file_index}_'
        self.inlined_files.append(path)
        stmts = [s for s in stmts if s.kind != 'Declare']
        self._substitute_magic(stmts, path)
        stmts = self._apply_prefix(stmts, prefix)

        self._active.append(real_path)
        try:
            return self._process(stmts, os.path.dirname(os.path.abspath(path)))
        finally:
            self._active.pop()

    @staticmethod
    def _is_once(node: Node) -> bool:
        return node.type in _ONCE_KINDS

    @staticmethod
    def _inlinable(stmts: List[Node]) -> bool:
        return not any(s.kind in ('Namespace', 'Return') for s in stmts)

    @staticmethod
    def _substitute_magic(stmts: List[Node], path: str) -> None:
        """``__DIR__`` and ``__FILE__`` keep pointing at the inlined file."""
        absolute = os.path.abspath(path)
        values = {'__FILE__': absolute, '__DIR__': os.path.dirname(absolute)}
        for node in walk(stmts):
            for name, value in node.iter_fields():
                if isinstance(value, Node):
                    replacement = _magic_value(value, values)
                    if replacement is not None:
                        setattr(node, name, replacement)
                elif isinstance(value, list):
                    for i, item in enumerate(value):
                        if isinstance(item, Node):
                            replacement = _magic_value(item, values)
                            if replacement is not None:
                                value[i] = replacement

    def _apply_prefix(self, stmts: List[Node], prefix: str) -> List[Node]:
        names = collect_names(stmts)
        if names.is_empty():
            return stmts
        for name in names.functions:
            self.function_renames.setdefault(name.lower(), prefix + name)
        for name in names.classes:
            self.class_renames.setdefault(name.lower(), prefix + name)
        for name in names.constants:
            self.constant_renames.setdefault(name, prefix + name)
        applier = PrefixApplier(prefix, names)
        stmts = Traverser(applier).traverse(stmts)
        logger.debug("Prefixed %d reference(s) with %s", applier.renamed, prefix)
        return stmts

    def _apply_global_renames(self, stmts: List[Node], entry_names: DefinedNames) -> List[Node]:
        """Point remaining references at the prefixed names.

        Symbols the entry file declares itself keep their own meaning there,
        so they are left out of the maps.
        """
        functions = {k: v for k, v in self.function_renames.items()
                     if k not in {n.lower() for n in entry_names.functions}}
        classes = {k: v for k, v in self.class_renames.items()
                   if k not in {n.lower() for n in entry_names.classes}}
        constants = {k: v for k, v in self.constant_renames.items()
                     if k not in set(entry_names.constants)}
        if not (functions or classes or constants):
            return stmts
        renamer = GlobalRenamer(functions, classes, constants)
        stmts = Traverser(renamer).traverse(stmts)
        logger.debug("Global rename updated %d reference(s)", renamer.renamed)
        return stmts


def _magic_value(node: Node, values: Dict[str, str]) -> Optional[Node]:
    if node.kind == 'MagicConst' and node.name in values:
        return Node('String', position=node.position, value=values[node.name])
    return None
