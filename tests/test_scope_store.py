"""
Tests for the scope store shared by the rewrite passes.
"""

import pytest

from recombinator.domain import GLOBAL_SCOPE, ClassInfo, FunctionInfo, ScopeStore
from recombinator.syntax import Node, parse_expression


def lit(value):
    return Node('Int', value=value)


class TestVariables:

    def setup_method(self):
        self.store = ScopeStore()

    def test_default_scope_is_global(self):
        assert self.store.current_scope == GLOBAL_SCOPE

    def test_set_and_get(self):
        assert self.store.set_var('a', lit(5))
        assert self.store.get_var('a').value == 5

    def test_value_is_copied(self):
        value = lit(5)
        self.store.set_var('a', value)
        value.value = 6
        assert self.store.get_var('a').value == 5

    def test_non_literal_drops_entry(self):
        self.store.set_var('a', lit(5))
        assert not self.store.set_var('a', parse_expression('$b + 1'))
        assert self.store.get_var('a') is None

    def test_scopes_are_separate(self):
        self.store.set_var('a', lit(1))
        self.store.set_current_scope('f')
        assert self.store.get_var('a') is None
        self.store.set_var('a', lit(2))
        self.store.set_current_scope(None)
        assert self.store.get_var('a').value == 1
        assert self.store.scope_vars('f')['a'].value == 2
        assert set(self.store.scopes()) == {GLOBAL_SCOPE, 'f'}

    def test_remove(self):
        self.store.set_var('a', lit(1))
        self.store.remove_var('a')
        self.store.remove_var('never')
        assert self.store.scope_vars() == {}

    def test_true_false_null_are_literals(self):
        assert self.store.set_var('flag', parse_expression('true'))
        assert self.store.set_var('s', parse_expression("'x'"))


class TestConstants:

    def setup_method(self):
        self.store = ScopeStore()

    def test_scope_constants(self):
        self.store.set_const('LIMIT', lit(10))
        assert self.store.get_const('LIMIT').value == 10
        self.store.set_current_scope('other')
        assert self.store.get_const('LIMIT') is None

    def test_global_constants_accept_literals_only(self):
        assert self.store.set_global_const('N', lit(3))
        assert self.store.set_global_const('LIST', parse_expression('[1, 2]'))
        assert not self.store.set_global_const('DYN', parse_expression('time()'))
        assert self.store.get_global_const('N').value == 3
        assert self.store.get_global_const('DYN') is None


class TestFunctionsAndClasses:

    def setup_method(self):
        self.store = ScopeStore()

    def test_function_names_are_case_insensitive(self):
        info = FunctionInfo('Double', [], parse_expression('1'))
        self.store.set_function('Double', info)
        assert self.store.get_function('DOUBLE') is info
        assert self.store.get_function('triple') is None

    def test_class_lookup(self):
        info = ClassInfo('Point')
        self.store.set_class('Point', info)
        assert self.store.get_class('point') is info

    def test_find_method_on_parent(self):
        base_method = Node('ClassMethod', name='area')
        child_method = Node('ClassMethod', name='name')
        self.store.set_class('Shape', ClassInfo('Shape', methods={'area': base_method}))
        self.store.set_class('Square', ClassInfo('Square', methods={'name': child_method},
                                                 parent='Shape'))
        owner, method = self.store.find_method('Square', 'AREA')
        assert owner.name == 'Shape'
        assert method is base_method
        owner, method = self.store.find_method('Square', 'name')
        assert owner.name == 'Square'
        assert self.store.find_method('Square', 'missing') is None
        assert self.store.find_method('Nope', 'area') is None

    def test_instances(self):
        self.store.set_instance('p', 'Point', {'props': {'x': 1}})
        assert self.store.get_class('Point') is not None
        class_name, data = self.store.find_instance('p')
        assert class_name == 'Point'
        assert data['props'] == {'x': 1}
        assert data['name'] == 'p'

    def test_instance_replaced_by_name(self):
        self.store.set_instance('p', 'Point', {'v': 1})
        self.store.set_instance('p', 'Point', {'v': 2})
        info = self.store.get_class('Point')
        assert len(info.instances) == 1
        assert info.instances[0]['v'] == 2
        assert self.store.find_instance('q') is None
