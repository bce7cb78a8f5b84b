"""
Scope Store
===========

Shared table through which passes exchange facts:

  - one *global* table: functions, classes, constants;
  - one table per scope name: variables and local constants.

Scope-keyed operations use the *current scope*, which every pass sets
explicitly before use (``set_current_scope``); ``GLOBAL_SCOPE`` is the
top-level program.

A scope's variable map only holds scalar literal replacements: storing a
non-literal removes the entry instead.

Function and class names are case-insensitive in PHP, so those keys are
lower-cased.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..syntax.nodes import Node, is_literal, is_scalar_literal

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = ''


@dataclass
class FunctionInfo:
    """A single-return function captured for call inlining."""
    name: str
    params: List[Node]
    expr: Node                     # return expression with ``arg_index`` markup


@dataclass
class ClassInfo:
    """What the passes know about a user class."""
    name: str
    properties: Dict[str, Optional[Node]] = field(default_factory=dict)
    methods: Dict[str, Node] = field(default_factory=dict)
    constants: Dict[str, Node] = field(default_factory=dict)
    parent: Optional[str] = None
    instances: List[Dict[str, Any]] = field(default_factory=list)
    referenced: bool = False       # some pass resolved a reference to it


@dataclass
class _Scope:
    vars: Dict[str, Node] = field(default_factory=dict)
    consts: Dict[str, Node] = field(default_factory=dict)


class ScopeStore:
    """Per-run symbol table shared by the passes."""

    def __init__(self):
        self.functions: Dict[str, FunctionInfo] = {}
        self.classes: Dict[str, ClassInfo] = {}
        self.global_consts: Dict[str, Node] = {}
        self._scopes: Dict[str, _Scope] = {}
        self.current_scope: str = GLOBAL_SCOPE

    def set_current_scope(self, name: Optional[str]) -> None:
        self.current_scope = name if name is not None else GLOBAL_SCOPE

    def _scope(self, create: bool = False) -> Optional[_Scope]:
        scope = self._scopes.get(self.current_scope)
        if scope is None and create:
            scope = self._scopes[self.current_scope] = _Scope()
        return scope

    # ── variables ──

    def set_var(self, name: str, value: Node) -> bool:
        """Record a literal replacement for ``$name``. Non-literals drop the entry."""
        if not is_scalar_literal(value):
            self.remove_var(name)
            return False
        self._scope(create=True).vars[name] = value.clone()
        return True

    def get_var(self, name: str) -> Optional[Node]:
        scope = self._scope()
        if scope is None:
            return None
        return scope.vars.get(name)

    def remove_var(self, name: str) -> None:
        scope = self._scope()
        if scope is not None:
            scope.vars.pop(name, None)

    def scope_vars(self, scope_name: Optional[str] = None) -> Dict[str, Node]:
        scope = self._scopes.get(self.current_scope if scope_name is None else scope_name)
        return dict(scope.vars) if scope is not None else {}

    # ── constants ──

    def set_const(self, name: str, value: Node) -> None:
        self._scope(create=True).consts[name] = value

    def get_const(self, name: str) -> Optional[Node]:
        scope = self._scope()
        if scope is None:
            return None
        return scope.consts.get(name)

    def set_global_const(self, name: str, value: Node) -> bool:
        if not is_literal(value):
            return False
        self.global_consts[name] = value.clone()
        return True

    def get_global_const(self, name: str) -> Optional[Node]:
        return self.global_consts.get(name)

    # ── functions and classes ──

    def set_function(self, name: str, info: FunctionInfo) -> None:
        self.functions[name.lower()] = info

    def get_function(self, name: str) -> Optional[FunctionInfo]:
        return self.functions.get(name.lower())

    def set_class(self, name: str, info: ClassInfo) -> None:
        self.classes[name.lower()] = info

    def get_class(self, name: str) -> Optional[ClassInfo]:
        return self.classes.get(name.lower())

    def find_method(self, class_name: str, method: str) -> Optional[Tuple[ClassInfo, Node]]:
        """Look ``method`` up on the class, then once on its parent."""
        info = self.get_class(class_name)
        if info is None:
            return None
        found = _method(info, method)
        if found is not None:
            return info, found
        if info.parent:
            parent = self.get_class(info.parent)
            if parent is not None:
                found = _method(parent, method)
                if found is not None:
                    return parent, found
        return None

    def set_instance(self, instance_name: str, class_name: str, data: Dict[str, Any]) -> None:
        info = self.get_class(class_name)
        if info is None:
            info = ClassInfo(class_name)
            self.set_class(class_name, info)
        data = dict(data, name=instance_name)
        info.instances = [i for i in info.instances if i.get('name') != instance_name]
        info.instances.append(data)

    def find_instance(self, instance_name: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        for info in self.classes.values():
            for instance in info.instances:
                if instance.get('name') == instance_name:
                    return info.name, instance
        return None

    def scopes(self) -> List[str]:
        return list(self._scopes)


def _method(info: ClassInfo, name: str) -> Optional[Node]:
    lowered = name.lower()
    for key, method in info.methods.items():
        if key.lower() == lowered:
            return method
    return None
