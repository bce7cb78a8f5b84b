"""
Symbol Renaming
===============

Helpers for flattening several files into one program:

  - :func:`collect_names` lists the functions, classes (with interfaces and
    traits) and constants a file declares, at any depth;
  - :class:`PrefixApplier` renames those declarations and every reference to
    them inside the same file;
  - :class:`GlobalRenamer` rewrites references anywhere else, once the whole
    program is assembled.

Function and class names compare case-insensitively, constants exactly.
``true``, ``false`` and ``null`` are never treated as user constants.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..engine.visitor import Visitor
from ..syntax.nodes import Node, NodeVisitor, name_node

_RESERVED_CONSTANTS = frozenset({'true', 'false', 'null'})
_RELATIVE_CLASSES = frozenset({'self', 'parent', 'static'})
_TYPE_KEYWORDS = frozenset({
    'int', 'float', 'string', 'bool', 'array', 'callable', 'iterable', 'object',
    'mixed', 'void', 'null', 'never', 'false', 'true', 'self', 'parent', 'static',
})


@dataclass
class DefinedNames:
    functions: List[str] = field(default_factory=list)
    classes: List[str] = field(default_factory=list)
    constants: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.functions or self.classes or self.constants)


def _define_name(node: Node) -> Optional[str]:
    """Constant name declared by ``define('NAME', ...)``, if literal."""
    if (node.kind == 'FuncCall' and isinstance(node.name, Node) and node.name.kind == 'Name'
            and node.name.value.lower() == 'define' and node.args
            and node.args[0].value is not None and node.args[0].value.kind == 'String'):
        return node.args[0].value.value
    return None


class NameCollector(NodeVisitor):
    """Gathers every user-defined symbol declared in a tree."""

    def __init__(self):
        self.names = DefinedNames()

    def visit_Function(self, node):
        self.names.functions.append(node.name)
        self.generic_visit(node)

    def visit_Class(self, node):
        if node.name:
            self.names.classes.append(node.name)
        self.generic_visit(node)

    def visit_Interface(self, node):
        self.names.classes.append(node.name)
        self.generic_visit(node)

    def visit_Trait(self, node):
        self.names.classes.append(node.name)
        self.generic_visit(node)

    def visit_ConstStmt(self, node):
        for const in node.consts:
            self.names.constants.append(const.name)
        self.generic_visit(node)

    def visit_FuncCall(self, node):
        name = _define_name(node)
        if name is not None:
            self.names.constants.append(name)
        self.generic_visit(node)


def collect_names(stmts: List[Node]) -> DefinedNames:
    collector = NameCollector()
    collector.visit(stmts)
    return collector.names


class _RenamingVisitor(Visitor):
    """
    Rewrites symbol references through three rename maps.

    ``functions`` and ``classes`` are keyed by lower-cased name,
    ``constants`` by exact name.
    """

    rename_declarations = False

    def __init__(self, functions: Dict[str, str], classes: Dict[str, str],
                 constants: Dict[str, str]):
        super().__init__()
        self.functions = functions
        self.classes = classes
        self.constants = constants
        self.renamed = 0

    # ── lookups ──

    def _function(self, name: str) -> Optional[str]:
        return self.functions.get(name.lstrip('\\').lower())

    def _class(self, name: str) -> Optional[str]:
        bare = name.lstrip('\\')
        if bare.lower() in _RELATIVE_CLASSES:
            return None
        return self.classes.get(bare.lower())

    def _constant(self, name: str) -> Optional[str]:
        bare = name.lstrip('\\')
        if bare.lower() in _RESERVED_CONSTANTS:
            return None
        return self.constants.get(bare)

    def _class_ref(self, ref: Optional[Node]) -> None:
        if ref is not None and ref.kind == 'Name':
            new = self._class(ref.value)
            if new is not None:
                ref.value = new
                self.renamed += 1

    def _class_refs(self, refs: List[Node]) -> None:
        for ref in refs:
            self._class_ref(ref)

    def _type(self, text: Optional[str]) -> Optional[str]:
        """Rename class names inside a type declaration such as ``?Foo|Bar``."""
        if not text:
            return text
        nullable = text.startswith('?')
        atoms = (text[1:] if nullable else text).split('|')
        out = []
        for atom in atoms:
            new = None if atom.lower() in _TYPE_KEYWORDS else self._class(atom)
            if new is not None:
                self.renamed += 1
            out.append(new or atom)
        return ('?' if nullable else '') + '|'.join(out)

    # ── visitor hooks ──

    def leave(self, node):
        kind = node.kind
        if kind == 'FuncCall':
            self._rename_call(node)
        elif kind in ('New', 'StaticCall', 'StaticPropertyFetch', 'ClassConstFetch', 'Instanceof'):
            self._class_ref(node.cls)
        elif kind == 'ConstFetch':
            new = self._constant(node.name.value)
            if new is not None:
                node.name = name_node(new)
                self.renamed += 1
        elif kind == 'Class':
            self._class_ref(node.extends)
            self._class_refs(node.implements)
            self._declaration(node, self._class)
        elif kind == 'Interface':
            self._class_refs(node.extends)
            self._declaration(node, self._class)
        elif kind == 'Trait':
            self._declaration(node, self._class)
        elif kind == 'TraitUse':
            self._class_refs(node.traits)
        elif kind == 'Catch':
            self._class_refs(node.types)
        elif kind == 'Param':
            node.type = self._type(node.type)
        elif kind == 'Property':
            node.type = self._type(node.type)
        elif kind in ('Function', 'ClassMethod', 'Closure', 'ArrowFunction'):
            node.return_type = self._type(node.return_type)
            if kind == 'Function':
                self._declaration(node, self._function)
        elif kind == 'ConstStmt' and self.rename_declarations:
            for const in node.consts:
                new = self._constant(const.name)
                if new is not None:
                    const.name = new
                    self.renamed += 1
        return None

    def _declaration(self, node: Node, lookup) -> None:
        if not self.rename_declarations or not node.name:
            return
        new = lookup(node.name)
        if new is not None:
            node.name = new
            self.renamed += 1

    def _rename_call(self, node: Node) -> None:
        if not isinstance(node.name, Node) or node.name.kind != 'Name':
            return
        define = _define_name(node)
        if define is not None:
            if self.rename_declarations:
                new = self._constant(define)
                if new is not None:
                    node.args[0].value = Node('String', value=new)
                    self.renamed += 1
            return
        new = self._function(node.name.value)
        if new is not None:
            node.name = name_node(new)
            self.renamed += 1


class PrefixApplier(_RenamingVisitor):
    """Prefixes a file's own declarations and its references to them."""

    rename_declarations = True

    def __init__(self, prefix: str, names: DefinedNames):
        super().__init__(
            {n.lower(): prefix + n for n in names.functions},
            {n.lower(): prefix + n for n in names.classes},
            {n: prefix + n for n in names.constants},
        )
        self.prefix = prefix


class GlobalRenamer(_RenamingVisitor):
    """Points references made outside a symbol's own file at its prefixed name."""
