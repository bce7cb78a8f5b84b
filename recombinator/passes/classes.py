"""
Class Inlining
==============

Object inlining replaces an object that never escapes its scope by one
variable per property::

    class Point {
        public function __construct(public $x, public $y) {}
        public function sum() { return $this->x + $this->y; }
    }
    $p = new Point(1, 2);             $p__x = 1;
    echo $p->sum();           →       $p__y = 2;
                                      echo $p__x + $p__y;

It is split over four passes:

  - ``constructor_and_methods``: replaces ``$v = new C(...)`` by the property
    initializations and the constructor body, and inlines method calls;
  - ``property_access``: rewrites the remaining ``$v->prop`` to ``$v__prop``;
  - ``const_class``: inlines literal class constants and records global
    constants;
  - ``class_inliner``: removes classes nothing refers to any more.

An object is only inlined when every use of its variable after the ``new``
is a fetch of a known public property or a call of a public method whose
body is a single ``return``; any other use (passing the object around,
``instanceof``, ``clone``, dynamic member names ...) keeps the object.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..analysis.effects import EffectKind
from ..domain.scope_store import ClassInfo
from ..engine.visitor import Visitor, mark_remove, mark_replace
from ..syntax.nodes import Node, expression_stmt, is_literal, name_of, variable, walk
from .base import (
    ScopeUsage, call_name, global_imports, is_constant_expr, is_this, markup_params,
    null_node, plain_args, program_usages, substitute,
)
from .functions import arg_fits_type, single_return_expr

logger = logging.getLogger(__name__)

# Magic methods that run implicitly on member access or destruction.
DANGEROUS_MAGIC = frozenset({
    '__destruct', '__get', '__set', '__isset', '__unset', '__call', '__callstatic', '__clone',
})

CLASS_KEYWORDS = frozenset({'self', 'static', 'parent'})

_TYPE_NAME_RE = re.compile(r'[A-Za-z_\\][A-Za-z0-9_\\]*')

_WRITE_KINDS = frozenset({'Assign', 'AssignRef', 'AssignOp', 'IncDec', 'Unset'})
_OPAQUE_KINDS = frozenset({'MagicConst', 'Closure', 'ArrowFunction'})


def instance_key(scope_name: str, var_name: str) -> str:
    """Scope store key of an inlined object: scope name plus variable name."""
    return f'{scope_name}${var_name}'


def class_name(node: Optional[Node]) -> Optional[str]:
    if node is None or node.kind != 'Name':
        return None
    return node.value.lstrip('\\')


def _flags(node: Node) -> Set[str]:
    return {f.lower() for f in (node.flags or [])}


def _public(flags: Set[str]) -> bool:
    return not flags & {'private', 'protected'}


# ═══════════════════════════════════════════════════════════════════
#  Class shapes
# ═══════════════════════════════════════════════════════════════════

@dataclass
class PropertyShape:
    name: str
    default: Optional[Node] = None
    type: Optional[str] = None
    public: bool = True
    static: bool = False
    promoted: bool = False


@dataclass
class ClassShape:
    """Members of an inlinable class (and of its parent, one level up)."""
    name: str
    node: Node
    properties: Dict[str, PropertyShape] = field(default_factory=dict)
    methods: Dict[str, Node] = field(default_factory=dict)
    parent: Optional['ClassShape'] = None

    def method(self, name: str) -> Optional[Node]:
        found = self.methods.get(name.lower())
        if found is None and self.parent is not None:
            found = self.parent.methods.get(name.lower())
        return found

    def property(self, name: str) -> Optional[PropertyShape]:
        found = self.properties.get(name)
        if found is None and self.parent is not None:
            found = self.parent.properties.get(name)
        if found is None or found.static:
            return None
        return found

    def instance_properties(self) -> Dict[str, PropertyShape]:
        merged = {}
        if self.parent is not None:
            merged.update(self.parent.instance_properties())
        merged.update(self.properties)
        return {k: v for k, v in merged.items() if not v.static}


def _simple_class(node: Node) -> bool:
    if 'abstract' in _flags(node):
        return False
    for stmt in node.stmts:
        if stmt.kind == 'TraitUse':
            return False
        if stmt.kind == 'ClassMethod' and stmt.name.lower() in DANGEROUS_MAGIC:
            return False
    return True


def _shape(node: Node, parent: Optional[ClassShape]) -> ClassShape:
    shape = ClassShape(node.name, node, parent=parent)
    for stmt in node.stmts:
        if stmt.kind == 'Property':
            flags = _flags(stmt)
            for item in stmt.props:
                shape.properties[item.name] = PropertyShape(
                    item.name, item.default, stmt.type, _public(flags), 'static' in flags)
        elif stmt.kind == 'ClassMethod':
            shape.methods[stmt.name.lower()] = stmt
            if stmt.name.lower() == '__construct':
                for param in stmt.params:
                    if param.flags and isinstance(param.var.name, str):
                        shape.properties[param.var.name] = PropertyShape(
                            param.var.name, None, param.type,
                            _public({f.lower() for f in param.flags}), promoted=True)
    return shape


def class_shapes(nodes: List[Node]) -> Dict[str, ClassShape]:
    """Shapes of the top-level classes objects can be inlined from, by lower-cased name."""
    candidates = {n.name.lower(): n for n in nodes
                  if n.kind == 'Class' and n.name and _simple_class(n)}
    shapes: Dict[str, ClassShape] = {}

    def build(key: str) -> Optional[ClassShape]:
        if key in shapes:
            return shapes[key]
        node = candidates.get(key)
        if node is None:
            return None
        parent = None
        if node.extends is not None:
            parent_node = candidates.get((class_name(node.extends) or '').lower())
            if parent_node is None or parent_node is node or parent_node.extends is not None:
                return None
            parent = build(parent_node.name.lower())
        shapes[key] = _shape(node, parent)
        return shapes[key]

    for key in candidates:
        build(key)
    return shapes


def _sync_store(store, shapes: Dict[str, ClassShape]) -> None:
    for shape in shapes.values():
        info = store.get_class(shape.name)
        if info is None:
            info = ClassInfo(shape.name)
            store.set_class(shape.name, info)
        info.properties = {k: p.default for k, p in shape.instance_properties().items()}
        info.methods = {m.name: m for m in shape.methods.values()}
        info.parent = shape.parent.name if shape.parent is not None else None


# ═══════════════════════════════════════════════════════════════════
#  Object inlining
# ═══════════════════════════════════════════════════════════════════

@dataclass
class InstancePlan:
    statements: List[Node]
    calls: List[Tuple[Node, Node]]
    properties: Dict[str, str]


class ConstructorAndMethodsVisitor(Visitor):
    """
    Replaces ``$v = new C(args);`` by plain assignments of the object's
    properties followed by the constructor's assignments, and the object's
    method calls by their return expressions. Property reads and writes on
    the object are left to ``property_access``, which must run as well.

    The constructor may only assign ``$this->prop`` from its parameters and
    already assigned properties; a method may only read its parameters and
    ``$this->prop``. Arguments must be pure.
    """

    id = 'constructor_and_methods'
    name = 'Constructor and method inlining'
    description = 'Inlines objects whose class members are simple enough'

    def before_traverse(self, nodes):
        passes = self.context.config.passes
        if passes is not None and 'property_access' not in passes:
            logger.warning("Object inlining needs the property_access pass; skipped")
            return None
        shapes = class_shapes(nodes)
        if not shapes:
            return None
        _sync_store(self.store, shapes)
        imported = global_imports(nodes)
        for usage in program_usages(nodes):
            if not usage.opaque:
                self._inline_scope(usage, shapes, imported)
        return None

    def _inline_scope(self, usage: ScopeUsage, shapes: Dict[str, ClassShape],
                      imported: Set[str]) -> None:
        params = {p.var.name if p.kind == 'Param' else p.name for p in usage.scope.params}
        for use in list(usage.variables.values()):
            if len(use.assignments) != 1 or use.name == 'this' or use.name in params:
                continue
            if usage.scope.name == '' and use.name in imported:
                continue
            stmt, assign = use.assignments[0]
            if assign.expr.kind != 'New':
                continue
            shape = shapes.get((class_name(assign.expr.cls) or '').lower())
            if shape is None:
                continue
            plan = self._plan(usage, use, stmt, assign, shape)
            if plan is None:
                continue
            if stmt.comments and plan.statements:
                plan.statements[0].set_attr('comments', list(stmt.comments))
            mark_replace(stmt, plan.statements)
            for call, expr in plan.calls:
                mark_replace(call, expr)
            self.store.set_instance(instance_key(usage.scope.name, use.name), shape.name, {
                'properties': plan.properties,
                'scope': usage.scope.name,
                'variable': use.name,
            })
            self.context.count(self.id, 'objects')
            self.context.count(self.id, 'methods', len(plan.calls))
            logger.debug("Inlined $%s = new %s() in scope %r", use.name, shape.name,
                         usage.scope.name)

    def _plan(self, usage: ScopeUsage, use, stmt: Node, assign: Node,
              shape: ClassShape) -> Optional[InstancePlan]:
        new = assign.expr
        if not plain_args(new.args) or not self._pure_args(new.args):
            return None
        properties = {name: f'{use.name}__{name}' for name in shape.instance_properties()}
        if any(target in usage.variables for target in properties.values()):
            return None

        start = usage.position(stmt)
        calls: List[Tuple[Node, Node]] = []
        for occurrence in use.occurrences:
            if occurrence is assign.var:
                continue
            if usage.position(occurrence) <= start:
                return None
            if any(a.kind == 'ArrowFunction' for a in occurrence.ancestors()):
                return None
            parent = occurrence.parent
            if parent is None:
                return None
            if parent.kind == 'PropertyFetch' and parent.var is occurrence:
                prop = shape.property(parent.name) if isinstance(parent.name, str) else None
                if prop is None or not prop.public:
                    return None
            elif parent.kind == 'MethodCall' and parent.var is occurrence:
                expr = self._method_call(shape, parent, properties)
                if expr is None:
                    return None
                calls.append((parent, expr))
            else:
                return None

        statements = self._construct(shape, new, properties)
        if statements is None:
            return None
        return InstancePlan(statements, calls, properties)

    def _pure_args(self, args: List[Node]) -> bool:
        classify = self.context.classifier.classify
        return all(classify(a.value) is EffectKind.PURE for a in args)

    def _bindable(self, method: Node, args: List[Node]) -> bool:
        params = method.params
        if not plain_args(args) or len(args) > len(params) or not self._pure_args(args):
            return False
        for param in params:
            if param.by_ref or param.variadic:
                return False
            if param.default is not None and not is_constant_expr(param.default):
                return False
        if any(p.default is None for p in params[len(args):]):
            return False
        return all(arg_fits_type(p.type, a.value) for p, a in zip(params, args))

    @staticmethod
    def _callable(method: Node) -> bool:
        flags = _flags(method)
        return method.stmts is not None and _public(flags) and 'static' not in flags \
            and not method.by_ref

    def _method_call(self, shape: ClassShape, call: Node,
                     properties: Dict[str, str]) -> Optional[Node]:
        if not isinstance(call.name, str):
            return None
        method = shape.method(call.name)
        if method is None or not self._callable(method) or not self._bindable(method, call.args):
            return None
        expr = single_return_expr(method.stmts)
        if expr is None or not self._reads_members_only(shape, method, expr):
            return None
        if method.return_type is not None and method.return_type.lower() != 'mixed':
            prop = shape.property(expr.name) if expr.kind == 'PropertyFetch' and is_this(expr.var) \
                and isinstance(expr.name, str) else None
            if prop is None or prop.type is None or prop.type.lower() != method.return_type.lower():
                return None
        return substitute(markup_params(method.params, expr), call.args, properties)

    @staticmethod
    def _reads_members_only(shape: ClassShape, method: Node, expr: Node) -> bool:
        """Only parameters and ``$this->knownProperty`` are read, nothing is written."""
        params = {p.var.name for p in method.params}
        for node in walk(expr):
            kind = node.kind
            if kind in _OPAQUE_KINDS or kind in _WRITE_KINDS:
                return False
            if kind == 'Name' and node.value.lower() in CLASS_KEYWORDS:
                return False
            if kind == 'Variable':
                if node.name == 'this':
                    parent = node.parent
                    if parent is None or parent.kind != 'PropertyFetch' or parent.var is not node \
                            or not isinstance(parent.name, str) or shape.property(parent.name) is None:
                        return False
                elif node.name not in params:
                    return False
        return True

    def _construct(self, shape: ClassShape, new: Node,
                   properties: Dict[str, str]) -> Optional[List[Node]]:
        """Property initialization followed by the substituted constructor body."""
        ctor = shape.method('__construct')
        assigned: Dict[str, int] = {}
        body: List[Tuple[str, Node]] = []
        if ctor is not None:
            if not self._callable(ctor) or not self._bindable(ctor, new.args):
                return None
            for param in ctor.params:
                if param.flags:
                    assigned.setdefault(param.var.name, -1)
                    body.append((param.var.name, markup_params(ctor.params, variable(param.var.name))))
            for index, stmt in enumerate(ctor.stmts):
                target = self._constructor_assignment(shape, ctor, stmt)
                if target is None:
                    return None
                assigned.setdefault(target, index)
            for index, stmt in enumerate(ctor.stmts):
                for node in walk(stmt.expr.expr):
                    if node.kind == 'PropertyFetch' and is_this(node.var) \
                            and assigned.get(node.name, -1) >= index:
                        return None
                body.append((stmt.expr.var.name, markup_params(ctor.params, stmt.expr.expr)))
        elif new.args:
            return None

        statements = []
        for name, prop in shape.instance_properties().items():
            if name in assigned:
                continue
            if prop.default is not None:
                value = prop.default.clone()
            elif prop.type is None:
                value = null_node()
            else:
                continue
            statements.append(self._assign(properties[name], value))
        for name, expr in body:
            statements.append(self._assign(properties[name], substitute(expr, new.args, properties)))
        return statements

    def _constructor_assignment(self, shape: ClassShape, ctor: Node, stmt: Node) -> Optional[str]:
        """Property a constructor statement assigns, or None if it does anything else."""
        if stmt.kind != 'Expression' or stmt.expr.kind != 'Assign':
            return None
        target, value = stmt.expr.var, stmt.expr.expr
        if target.kind != 'PropertyFetch' or not is_this(target.var) or not isinstance(target.name, str):
            return None
        prop = shape.property(target.name)
        if prop is None or not self._reads_members_only(shape, ctor, value):
            return None
        if prop.type is not None and prop.type.lower() != 'mixed':
            param = next((p for p in ctor.params
                          if value.kind == 'Variable' and p.var.name == value.name), None)
            if param is None or param.type is None or param.type.lower() != prop.type.lower():
                return None
        return target.name

    @staticmethod
    def _assign(name: str, value: Node) -> Node:
        return expression_stmt(Node('Assign', var=variable(name), expr=value))


class PropertyAccessVisitor(Visitor):
    """
    Rewrites ``$v->prop`` to ``$v__prop`` for every object the
    ``constructor_and_methods`` pass inlined, reads and writes alike.
    """

    id = 'property_access'
    name = 'Property access rewriting'
    description = 'Turns property accesses of inlined objects into variables'

    def before_traverse(self, nodes):
        if not any(info.instances for info in self.store.classes.values()):
            return None
        for usage in program_usages(nodes):
            for use in usage.variables.values():
                found = self.store.find_instance(instance_key(usage.scope.name, use.name))
                if found is None:
                    continue
                properties = found[1]['properties']
                for occurrence in use.occurrences:
                    parent = occurrence.parent
                    if parent is not None and parent.kind == 'PropertyFetch' \
                            and parent.var is occurrence and parent.name in properties:
                        replacement = variable(properties[parent.name])
                        replacement.position = parent.position
                        mark_replace(parent, replacement)
                        self.context.count(self.id, 'rewritten')
        return None


# ═══════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════

def _define_call(stmt: Node) -> Optional[Tuple[str, Node]]:
    """``define('NAME', value);`` as ``(NAME, value)``."""
    if stmt.kind != 'Expression' or stmt.expr is None or call_name(stmt.expr) != 'define':
        return None
    args = stmt.expr.args
    if len(args) != 2 or not plain_args(args) or args[0].value.kind != 'String':
        return None
    return args[0].value.value, args[1].value


class ConstClassVisitor(Visitor):
    """
    Inlines class constants with literal values::

        class Config { const LIMIT = 10; }
        echo Config::LIMIT * 2;           →   echo 10 * 2;

    ``self::X`` and ``parent::X`` are resolved inside the declaring class,
    ``Name::X`` anywhere; a constant missing on the class is looked up once
    on its parent. ``static::X`` is late-bound and stays.

    Top-level ``const X = ...;`` and ``define('X', ...)`` with literal values
    are recorded as global constants, and fetches of constants defined
    exactly once are inlined. A repeated top-level definition of the same
    name has no effect in PHP and is dropped.
    """

    id = 'const_class'
    name = 'Class constant inlining'
    description = 'Inlines literal class and global constants'

    def before_traverse(self, nodes):
        self.parents: Dict[str, str] = {}
        for node in walk(nodes):
            if node.kind == 'Class' and node.name:
                self._record_class(node)
        self.single_definitions = self._record_globals(nodes)
        return None

    def _record_class(self, node: Node) -> None:
        info = self.store.get_class(node.name)
        if info is None:
            info = ClassInfo(node.name)
            self.store.set_class(node.name, info)
        if node.extends is not None:
            parent = class_name(node.extends)
            info.parent = parent
            self.parents[node.name.lower()] = parent
        for stmt in node.stmts:
            if stmt.kind == 'ClassConst':
                for const in stmt.consts:
                    if is_literal(const.value):
                        info.constants[const.name] = const.value.clone()

    def _record_globals(self, nodes: List[Node]) -> Set[str]:
        counts: Dict[str, int] = {}
        for node in walk(nodes):
            if node.kind == 'ConstStmt':
                for const in node.consts:
                    counts[const.name] = counts.get(const.name, 0) + 1
            elif node.kind == 'FuncCall' and call_name(node) == 'define' and node.args \
                    and node.args[0].value.kind == 'String':
                name = node.args[0].value.value
                counts[name] = counts.get(name, 0) + 1
            elif node.kind == 'FuncCall' and call_name(node) == 'define':
                # a computed name may define anything
                counts[''] = 2

        seen: Set[str] = set()
        for stmt in nodes:
            definitions = []
            if stmt.kind == 'ConstStmt':
                definitions = [(c.name, c.value) for c in stmt.consts]
            else:
                define = _define_call(stmt)
                if define is not None:
                    definitions = [define]
            for name, value in definitions:
                if name in seen:
                    if stmt.kind != 'ConstStmt' or len(stmt.consts) == 1:
                        mark_remove(stmt)
                        counts[name] -= 1
                        self.context.count(self.id, 'duplicates')
                    continue
                seen.add(name)
                if is_literal(value):
                    self.store.set_global_const(name, value)
        if '' in counts:
            return set()
        return {name for name, n in counts.items() if n == 1 and name in seen}

    def leave(self, node):
        if node.kind == 'ClassConstFetch':
            return self._class_constant(node)
        if node.kind == 'ConstFetch':
            name = (name_of(node) or '').lstrip('\\')
            if name in self.single_definitions:
                value = self.store.get_global_const(name)
                if value is not None:
                    self.context.count(self.id, 'global')
                    return value.clone()
        return None

    def _class_constant(self, node: Node):
        name = class_name(node.cls)
        if name is None or not isinstance(node.name, str) or node.name.lower() == 'class':
            return None
        lowered = name.lower()
        if lowered == 'static':
            return None
        if lowered in ('self', 'parent'):
            owner = self._enclosing_class(node)
            if owner is None:
                return None
            name = owner if lowered == 'self' else self.parents.get(owner.lower())
            if name is None:
                return None
        value = self._lookup(name, node.name)
        if value is None:
            return None
        self.context.count(self.id, 'class')
        return value.clone()

    def _lookup(self, class_name_: str, const: str) -> Optional[Node]:
        info = self.store.get_class(class_name_)
        if info is None:
            return None
        if const in info.constants:
            info.referenced = True
            return info.constants[const]
        if info.parent:
            parent = self.store.get_class(info.parent)
            if parent is not None and const in parent.constants:
                info.referenced = parent.referenced = True
                return parent.constants[const]
        return None

    @staticmethod
    def _enclosing_class(node: Node) -> Optional[str]:
        for ancestor in node.ancestors():
            if ancestor.kind == 'Class':
                return ancestor.name
            if ancestor.kind in ('Interface', 'Trait'):
                return None
        return None


# ═══════════════════════════════════════════════════════════════════
#  Class removal
# ═══════════════════════════════════════════════════════════════════

def _type_names(type_text: Optional[str]) -> Set[str]:
    if not type_text:
        return set()
    return {m.lstrip('\\').lower() for m in _TYPE_NAME_RE.findall(type_text)}


def referenced_classes(nodes: List[Node], exclude: Optional[Node] = None) -> Set[str]:
    """Lower-cased class names the tree refers to, outside ``exclude``."""
    names: Set[str] = set()
    stack = [n for n in nodes if n is not None and n is not exclude]
    while stack:
        node = stack.pop()
        kind = node.kind
        if kind in ('New', 'StaticCall', 'StaticPropertyFetch', 'ClassConstFetch', 'Instanceof'):
            name = class_name(node.cls)
            if name:
                names.add(name.lower())
        elif kind == 'Class':
            for ref in [node.extends] + list(node.implements):
                name = class_name(ref)
                if name:
                    names.add(name.lower())
        elif kind == 'Interface':
            names.update((class_name(n) or '').lower() for n in node.extends)
        elif kind == 'Catch':
            names.update((class_name(n) or '').lower() for n in node.types)
        elif kind == 'TraitUse':
            names.update((class_name(n) or '').lower() for n in node.traits)
        elif kind in ('Param', 'Property'):
            names.update(_type_names(node.type))
        elif kind in ('Function', 'ClassMethod', 'Closure', 'ArrowFunction'):
            names.update(_type_names(node.return_type))
        elif kind == 'String':
            names.add(node.value.lstrip('\\').lower())
        stack.extend(c for c in node.child_nodes() if c is not exclude)
    return names


class ClassInlinerVisitor(Visitor):
    """
    Removes top-level classes the other passes have fully inlined: objects
    or constants of the class were inlined (or it was seen referenced in an
    earlier round) and nothing refers to it any more (no ``new``, static
    access, ``instanceof``, type declaration, ``extends``, ``implements``,
    ``catch`` or string with its name). Classes that were never used are
    left alone.
    """

    id = 'class_inliner'
    name = 'Class removal'
    description = 'Removes classes without remaining references'

    def before_traverse(self, nodes):
        for node in nodes:
            if node.kind != 'Class' or not node.name:
                continue
            info = self.store.get_class(node.name)
            if info is None:
                continue
            if node.name.lower() in referenced_classes(nodes, exclude=node):
                info.referenced = True
                continue
            if not (info.referenced or info.instances):
                continue
            mark_remove(node)
            self.context.count(self.id, 'removed')
            logger.debug("Removed class %s", node.name)
        return None
