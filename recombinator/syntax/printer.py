"""
PHP Pretty-Printer
==================

Turns ``Node`` lists back into PHP source. Output is deterministic:
4-space indentation, braces on every body, minimal parentheses chosen from a
precedence table. Re-parsing printed code yields an equivalent tree, which
is what the pipeline relies on for change detection.
"""

import math
from typing import List, Optional

from .nodes import Node
from .strings import escape_double, escape_interpolated_literal, quote_string

INDENT = '    '

PHP_INT_MIN = -0x8000000000000000

# Binding strength, lowest first; mirrors the layering of the grammar.
_BINARY_PRECEDENCE = {
    'or': (1, 'left'), 'xor': (2, 'left'), 'and': (3, 'left'),
    '??': (6, 'right'),
    '||': (7, 'left'), '&&': (8, 'left'),
    '|': (9, 'left'), '^': (10, 'left'), '&': (11, 'left'),
    '==': (12, 'none'), '!=': (12, 'none'), '===': (12, 'none'), '!==': (12, 'none'),
    '<': (13, 'none'), '<=': (13, 'none'), '>': (13, 'none'), '>=': (13, 'none'),
    '<=>': (13, 'none'),
    '.': (14, 'left'),
    '<<': (15, 'left'), '>>': (15, 'left'),
    '+': (16, 'left'), '-': (16, 'left'),
    '*': (17, 'left'), '/': (17, 'left'), '%': (17, 'left'),
    '**': (21, 'right'),
}

P_ASSIGN = 4
P_TERNARY = 5
P_NOT = 18
P_INSTANCEOF = 19
P_UNARY = 20
P_POSTFIX = 22
P_PRIMARY = 23

_WORD_OPERATORS = frozenset({'or', 'xor', 'and'})
_STANDALONE_CALLS = frozenset({'Isset', 'Empty', 'Eval', 'Exit'})


def precedence(node: Node) -> int:
    kind = node.kind
    if kind == 'BinaryOp':
        return _BINARY_PRECEDENCE[node.op][0]
    if kind in ('Assign', 'AssignRef', 'AssignOp', 'Print', 'Include',
                'ArrowFunction', 'Closure'):
        return P_ASSIGN
    if kind == 'Ternary':
        return P_TERNARY
    if kind == 'UnaryOp':
        return P_NOT if node.op == '!' else P_UNARY
    if kind == 'Instanceof':
        return P_INSTANCEOF
    if kind in ('Cast', 'ErrorSuppress', 'Clone', 'New'):
        return P_UNARY
    if kind == 'IncDec':
        return P_UNARY if node.prefix else P_POSTFIX
    if kind in ('Int', 'Float'):
        value = node.value
        if value < 0 or (isinstance(value, float) and math.copysign(1.0, value) < 0):
            return P_UNARY
        return P_PRIMARY
    if kind in ('FuncCall', 'MethodCall', 'StaticCall', 'PropertyFetch',
                'StaticPropertyFetch', 'ClassConstFetch', 'ArrayDimFetch'):
        return P_POSTFIX
    return P_PRIMARY


class Printer:
    """Pretty-printer. One instance may be reused; it keeps only indentation."""

    def __init__(self):
        self.level = 0

    # ── statements ───────────────────────────────────────────────────

    def file(self, stmts: List[Node]) -> str:
        stmts = list(stmts)
        head = '<?php\n'
        if stmts and stmts[0].kind == 'InlineHTML':
            head = stmts.pop(0).value + head
        body = self.stmts(stmts)
        if not body:
            return head
        return head + '\n' + body + '\n'

    def stmts(self, stmts: List[Node]) -> str:
        out = []
        for i, stmt in enumerate(stmts):
            text = self.stmt(stmt, last=i == len(stmts) - 1)
            if not text:
                continue
            if stmt.get_attr('separator') and out:
                out.append('')
            out.append(text)
        return '\n'.join(out)

    def stmt(self, node: Node, last: bool = False) -> str:
        pad = INDENT * self.level
        lines = [pad + c for c in node.comments]
        if node.kind == 'InlineHTML':
            text = pad + '?>\n' + node.value + ('' if last else '<?php')
        else:
            method = getattr(self, 's_' + node.kind, None)
            if method is None:
                raise ValueError(f'cannot print statement {node.kind}')
            text = method(node)
            if text:
                text = pad + text
        if text:
            lines.append(text)
        return '\n'.join(lines)

    def body(self, stmts: Optional[List[Node]]) -> str:
        """``{ ... }`` block; the opening brace stays on the current line."""
        self.level += 1
        try:
            inner = self.stmts(stmts or [])
        finally:
            self.level -= 1
        pad = INDENT * self.level
        if not inner:
            return '{\n' + pad + '}'
        return '{\n' + inner + '\n' + pad + '}'

    def decl_body(self, stmts: Optional[List[Node]]) -> str:
        """Function/class body with the brace on its own line."""
        return '\n' + INDENT * self.level + self.body(stmts)

    def s_Expression(self, node):
        return self.expr(node.expr) + ';'

    def s_Echo(self, node):
        return 'echo ' + ', '.join(self.expr(e) for e in node.exprs) + ';'

    def s_Return(self, node):
        if node.expr is None:
            return 'return;'
        return 'return ' + self.expr(node.expr) + ';'

    def s_If(self, node):
        text = f'if ({self.expr(node.cond)}) ' + self.body(node.stmts)
        for clause in node.elseifs:
            text += f' elseif ({self.expr(clause.cond)}) ' + self.body(clause.stmts)
        if node.else_ is not None:
            text += ' else ' + self.body(node.else_.stmts)
        return text

    def s_While(self, node):
        return f'while ({self.expr(node.cond)}) ' + self.body(node.stmts)

    def s_DoWhile(self, node):
        return 'do ' + self.body(node.stmts) + f' while ({self.expr(node.cond)});'

    def s_For(self, node):
        parts = [', '.join(self.expr(e) for e in group)
                 for group in (node.init, node.cond, node.loop)]
        return f'for ({parts[0]}; {parts[1]}; {parts[2]}) ' + self.body(node.stmts)

    def s_Foreach(self, node):
        target = ('&' if node.by_ref else '') + self.expr(node.value)
        if node.key is not None:
            target = self.expr(node.key) + ' => ' + target
        return f'foreach ({self.expr(node.expr)} as {target}) ' + self.body(node.stmts)

    def s_Switch(self, node):
        self.level += 1
        pad = INDENT * self.level
        cases = []
        for case in node.cases:
            head = 'default:' if case.cond is None else f'case {self.expr(case.cond)}:'
            lines = [pad + c for c in case.comments] + [pad + head]
            self.level += 1
            inner = self.stmts(case.stmts)
            self.level -= 1
            if inner:
                lines.append(inner)
            cases.append('\n'.join(lines))
        self.level -= 1
        closing = INDENT * self.level + '}'
        inner = '\n'.join(cases)
        return f'switch ({self.expr(node.cond)}) {{\n' + (inner + '\n' if inner else '') + closing

    def s_Break(self, node):
        return 'break;' if node.num is None else f'break {self.expr(node.num)};'

    def s_Continue(self, node):
        return 'continue;' if node.num is None else f'continue {self.expr(node.num)};'

    def s_Try(self, node):
        text = 'try ' + self.body(node.stmts)
        for catch in node.catches:
            types = '|'.join(self.name(t) for t in catch.types)
            var = f' {self.expr(catch.var)}' if catch.var is not None else ''
            text += f' catch ({types}{var}) ' + self.body(catch.stmts)
        if node.finally_ is not None:
            text += ' finally ' + self.body(node.finally_.stmts)
        return text

    def s_Throw(self, node):
        return 'throw ' + self.expr(node.expr) + ';'

    def s_Function(self, node):
        ref = '&' if node.by_ref else ''
        return (f'function {ref}{node.name}({self.params(node.params)})'
                f'{self.return_type(node.return_type)}' + self.decl_body(node.stmts))

    def s_Class(self, node):
        head = ' '.join(list(node.flags or []) + ['class', node.name])
        if node.extends is not None:
            head += ' extends ' + self.name(node.extends)
        if node.implements:
            head += ' implements ' + ', '.join(self.name(n) for n in node.implements)
        return head + self.decl_body(node.stmts)

    def s_Interface(self, node):
        head = 'interface ' + node.name
        if node.extends:
            head += ' extends ' + ', '.join(self.name(n) for n in node.extends)
        return head + self.decl_body(node.stmts)

    def s_Trait(self, node):
        return 'trait ' + node.name + self.decl_body(node.stmts)

    def s_ClassMethod(self, node):
        head = ' '.join(list(node.flags or []) + ['function'])
        ref = '&' if node.by_ref else ''
        head += f' {ref}{node.name}({self.params(node.params)}){self.return_type(node.return_type)}'
        if node.stmts is None:
            return head + ';'
        return head + self.decl_body(node.stmts)

    def s_Property(self, node):
        head = ' '.join(node.flags or ['var'])
        if node.type:
            head += ' ' + node.type
        items = []
        for prop in node.props:
            item = '$' + prop.name
            if prop.default is not None:
                item += ' = ' + self.expr(prop.default)
            items.append(item)
        return head + ' ' + ', '.join(items) + ';'

    def s_ClassConst(self, node):
        head = ' '.join(list(node.flags or []) + ['const'])
        return head + ' ' + ', '.join(self.const(c) for c in node.consts) + ';'

    def s_ConstStmt(self, node):
        return 'const ' + ', '.join(self.const(c) for c in node.consts) + ';'

    def s_TraitUse(self, node):
        return 'use ' + ', '.join(self.name(t) for t in node.traits) + ';'

    def s_Global(self, node):
        return 'global ' + ', '.join(self.expr(v) for v in node.vars) + ';'

    def s_Static(self, node):
        items = []
        for var in node.vars:
            item = self.expr(var.var)
            if var.default is not None:
                item += ' = ' + self.expr(var.default)
            items.append(item)
        return 'static ' + ', '.join(items) + ';'

    def s_Unset(self, node):
        return 'unset(' + ', '.join(self.expr(v) for v in node.vars) + ');'

    def s_Nop(self, node):
        return ''

    def s_Block(self, node):
        return self.body(node.stmts)

    def s_Namespace(self, node):
        if not node.braced:
            return f'namespace {node.name};'
        head = 'namespace ' + (node.name + ' ' if node.name else '')
        return head + self.body(node.stmts)

    def s_Use(self, node):
        items = []
        for use in node.uses:
            items.append(use.name + (f' as {use.alias}' if use.alias else ''))
        kind = f'{node.type} ' if node.type else ''
        return f'use {kind}' + ', '.join(items) + ';'

    def s_Declare(self, node):
        items = [f'{d.key}={self.expr(d.value)}' for d in node.declares]
        return 'declare(' + ', '.join(items) + ');'

    # ── declarations helpers ──

    def const(self, node: Node) -> str:
        return f'{node.name} = {self.expr(node.value)}'

    def params(self, params: List[Node]) -> str:
        out = []
        for p in params:
            parts = list(p.flags or [])
            if p.type:
                parts.append(p.type)
            var = ('&' if p.by_ref else '') + ('...' if p.variadic else '') + self.expr(p.var)
            if p.default is not None:
                var += ' = ' + self.expr(p.default)
            parts.append(var)
            out.append(' '.join(parts))
        return ', '.join(out)

    @staticmethod
    def return_type(type_: Optional[str]) -> str:
        return f': {type_}' if type_ else ''

    @staticmethod
    def name(node: Node) -> str:
        if isinstance(node, str):
            return node
        prefix = '\\' if node.get_attr('fully_qualified') else ''
        return prefix + node.value

    # ── expressions ──────────────────────────────────────────────────

    def expr(self, node: Node, min_prec: int = 0) -> str:
        method = getattr(self, 'e_' + node.kind, None)
        if method is None:
            raise ValueError(f'cannot print expression {node.kind}')
        text = method(node)
        if precedence(node) < min_prec:
            return '(' + text + ')'
        return text

    def base(self, node: Node) -> str:
        """Operand of a fetch or call."""
        if node.kind == 'Name':
            return self.name(node)
        if node.kind in ('New', 'Closure', 'ArrowFunction') or precedence(node) < P_POSTFIX:
            return '(' + self.expr(node) + ')'
        return self.expr(node)

    def class_ref(self, node: Node) -> str:
        if node.kind == 'Name':
            return self.name(node)
        return self.base(node)

    def e_Variable(self, node):
        if isinstance(node.name, str):
            return '$' + node.name
        if node.name.kind == 'Variable':
            return '$' + self.expr(node.name)
        return '${' + self.expr(node.name) + '}'

    def e_String(self, node):
        return quote_string(node.value)

    def e_Int(self, node):
        if node.value == PHP_INT_MIN:
            return 'PHP_INT_MIN'
        return str(node.value)

    def e_Float(self, node):
        value = node.value
        if math.isnan(value):
            return 'NAN'
        if math.isinf(value):
            return 'INF' if value > 0 else '-INF'
        return repr(value)

    def e_Interpolated(self, node):
        pieces = []
        for part in node.parts:
            if part.kind == 'String':
                pieces.append(escape_interpolated_literal(part.value))
            elif is_variable_like(part):
                pieces.append('{' + self.expr(part) + '}')
            else:
                return self._concat_parts(node.parts)
        return '"' + ''.join(pieces) + '"'

    def _concat_parts(self, parts: List[Node]) -> str:
        operands = [self.expr(p, _BINARY_PRECEDENCE['.'][0] + 1) for p in parts]
        return '(' + ' . '.join(operands) + ')'

    def e_ShellExec(self, node):
        pieces = []
        for part in node.parts:
            if part.kind == 'String':
                pieces.append(escape_double(part.value).replace('\\"', '"').replace('`', '\\`'))
            else:
                pieces.append('{' + self.expr(part) + '}')
        return '`' + ''.join(pieces) + '`'

    def e_Array(self, node):
        items = ', '.join('' if item is None else self.array_item(item) for item in node.items)
        if node.style == 'long':
            return f'array({items})'
        if node.style == 'list':
            return f'list({items})'
        return f'[{items}]'

    def array_item(self, item: Node) -> str:
        if item.unpack:
            return '...' + self.expr(item.value)
        value = ('&' if item.by_ref else '') + self.expr(item.value)
        if item.key is not None:
            return self.expr(item.key) + ' => ' + value
        return value

    def e_BinaryOp(self, node):
        prec, assoc = _BINARY_PRECEDENCE[node.op]
        left_min = prec if assoc == 'left' else prec + 1
        right_min = prec if assoc == 'right' else prec + 1
        if node.op == '**':
            left_min, right_min = P_POSTFIX, P_UNARY
        left = self.expr(node.left, left_min)
        right = self.expr(node.right, right_min)
        return f'{left} {node.op} {right}'

    def e_UnaryOp(self, node):
        if node.op == '!':
            return '!' + self.expr(node.expr, P_NOT)
        operand = self.expr(node.expr, P_UNARY)
        if node.op in '+-' and operand.startswith(node.op):
            return node.op + ' ' + operand
        return node.op + operand

    def e_Cast(self, node):
        return f'({node.type}) ' + self.expr(node.expr, P_UNARY)

    def e_ErrorSuppress(self, node):
        return '@' + self.expr(node.expr, P_UNARY)

    def e_Clone(self, node):
        return 'clone ' + self.expr(node.expr, P_UNARY)

    def e_Assign(self, node):
        return self.expr(node.var, P_POSTFIX) + ' = ' + self.expr(node.expr, P_ASSIGN)

    def e_AssignRef(self, node):
        return self.expr(node.var, P_POSTFIX) + ' = &' + self.expr(node.expr, P_POSTFIX)

    def e_AssignOp(self, node):
        return f'{self.expr(node.var, P_POSTFIX)} {node.op}= {self.expr(node.expr, P_ASSIGN)}'

    def e_IncDec(self, node):
        var = self.expr(node.var, P_POSTFIX)
        return node.op + var if node.prefix else var + node.op

    def e_Ternary(self, node):
        cond = self.expr(node.cond, P_TERNARY + 1)
        otherwise = self.expr(node.otherwise, P_TERNARY + 1)
        if node.then is None:
            return f'{cond} ?: {otherwise}'
        return f'{cond} ? {self.expr(node.then)} : {otherwise}'

    def e_Isset(self, node):
        return 'isset(' + ', '.join(self.expr(v) for v in node.vars) + ')'

    def e_Empty(self, node):
        return 'empty(' + self.expr(node.expr) + ')'

    def e_Name(self, node):
        return self.name(node)

    def e_ConstFetch(self, node):
        return self.name(node.name)

    def e_MagicConst(self, node):
        return node.name

    def args(self, args: List[Node]) -> str:
        out = []
        for arg in args:
            text = self.expr(arg.value)
            if arg.unpack:
                text = '...' + text
            if arg.name:
                text = f'{arg.name}: {text}'
            out.append(text)
        return '(' + ', '.join(out) + ')'

    def member(self, name) -> str:
        if isinstance(name, str):
            return name
        if name.kind == 'Variable':
            return self.expr(name)
        return '{' + self.expr(name) + '}'

    def e_FuncCall(self, node):
        return self.base(node.name) + self.args(node.args)

    def e_MethodCall(self, node):
        arrow = '?->' if node.nullsafe else '->'
        return self.base(node.var) + arrow + self.member(node.name) + self.args(node.args)

    def e_StaticCall(self, node):
        return self.class_ref(node.cls) + '::' + node.name + self.args(node.args)

    def e_PropertyFetch(self, node):
        arrow = '?->' if node.nullsafe else '->'
        return self.base(node.var) + arrow + self.member(node.name)

    def e_StaticPropertyFetch(self, node):
        return self.class_ref(node.cls) + '::$' + node.name

    def e_ClassConstFetch(self, node):
        return self.class_ref(node.cls) + '::' + node.name

    def e_ArrayDimFetch(self, node):
        dim = '' if node.dim is None else self.expr(node.dim)
        return self.base(node.var) + '[' + dim + ']'

    def e_New(self, node):
        return 'new ' + self.class_ref(node.cls) + self.args(node.args)

    def e_Instanceof(self, node):
        return self.expr(node.expr, P_UNARY) + ' instanceof ' + self.class_ref(node.cls)

    def e_Closure(self, node):
        head = ('static ' if node.static else '') + 'function ' + ('&' if node.by_ref else '')
        head += f'({self.params(node.params)})'
        if node.uses:
            uses = ', '.join(('&' if u.by_ref else '') + self.expr(u.var) for u in node.uses)
            head += f' use ({uses})'
        return head + self.return_type(node.return_type) + ' ' + self.body(node.stmts)

    def e_ArrowFunction(self, node):
        head = ('static ' if node.static else '') + 'fn' + ('&' if node.by_ref else '')
        head += f'({self.params(node.params)}){self.return_type(node.return_type)}'
        return head + ' => ' + self.expr(node.expr, P_ASSIGN)

    def e_Include(self, node):
        return f'{node.type} ' + self.expr(node.expr, P_TERNARY)

    def e_Eval(self, node):
        return 'eval(' + self.expr(node.expr) + ')'

    def e_Exit(self, node):
        if node.expr is None:
            return node.type
        return f'{node.type}(' + self.expr(node.expr) + ')'

    def e_Print(self, node):
        return 'print ' + self.expr(node.expr, P_TERNARY)

    def e_Match(self, node):
        self.level += 1
        pad = INDENT * self.level
        arms = []
        for arm in node.arms:
            conds = 'default' if arm.conds is None else ', '.join(self.expr(c) for c in arm.conds)
            arms.append(f'{pad}{conds} => {self.expr(arm.body)},')
        self.level -= 1
        closing = INDENT * self.level + '}'
        inner = '\n'.join(arms)
        return f'match ({self.expr(node.cond)}) {{\n' + (inner + '\n' if inner else '') + closing


def is_variable_like(node: Node) -> bool:
    """Expressions PHP accepts inside ``{$...}``."""
    while node.kind in ('ArrayDimFetch', 'PropertyFetch', 'MethodCall'):
        node = node.var
    return node.kind == 'Variable'


def print_file(stmts: List[Node]) -> str:
    """Complete PHP file: open tag followed by the statements."""
    return Printer().file(stmts)


def print_nodes(stmts: List[Node]) -> str:
    """Statements without the open tag."""
    return Printer().stmts(stmts)


def print_expr(node: Node) -> str:
    return Printer().expr(node)
