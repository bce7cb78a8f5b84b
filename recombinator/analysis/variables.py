"""
Variable usage analysis for a statement block.

Names are reported with their ``$`` sigil, in first-occurrence order.
Nested functions, methods and classes are opaque; closures contribute only
the variables they capture with ``use``.
"""

from typing import Dict, List, Union

from ..syntax.nodes import Node, NodeVisitor

SPECIAL_VARIABLES = frozenset({
    'this', 'GLOBALS', '_SERVER', '_GET', '_POST', '_FILES',
    '_COOKIE', '_SESSION', '_REQUEST', '_ENV',
})


class VariableVisitor(NodeVisitor):

    def __init__(self):
        self.used: List[str] = []
        self.defined: List[str] = []
        # read before any write in this block
        self.inputs: List[str] = []

    def _read(self, name: str) -> None:
        if name not in self.used:
            self.used.append(name)
        if name not in self.defined and name not in self.inputs:
            self.inputs.append(name)

    def _write(self, name: str) -> None:
        if name not in self.defined:
            self.defined.append(name)

    @staticmethod
    def _plain_name(node: Node):
        if node is not None and node.kind == 'Variable' and isinstance(node.name, str) \
                and node.name not in SPECIAL_VARIABLES:
            return '$' + node.name
        return None

    def visit_Variable(self, node):
        name = self._plain_name(node)
        if name:
            self._read(name)
        elif isinstance(node.name, Node):
            self.visit(node.name)

    def visit_Assign(self, node):
        self.visit(node.expr)
        name = self._plain_name(node.var)
        if name:
            self._write(name)
        else:
            self.visit(node.var)

    visit_AssignRef = visit_Assign

    def visit_AssignOp(self, node):
        self.visit(node.expr)
        self.visit(node.var)
        name = self._plain_name(node.var)
        if name:
            self._write(name)

    def visit_IncDec(self, node):
        self.visit(node.var)
        name = self._plain_name(node.var)
        if name:
            self._write(name)

    def visit_Foreach(self, node):
        self.visit(node.expr)
        for target in (node.key, node.value):
            name = self._plain_name(target)
            if name:
                self._write(name)
            elif target is not None:
                self.visit(target)
        self.visit(node.stmts)

    def visit_Closure(self, node):
        for use in node.uses:
            name = self._plain_name(use.var)
            if name:
                self._read(name)

    def visit_ArrowFunction(self, node):
        pass

    def visit_Function(self, node):
        pass

    visit_ClassMethod = visit_Function
    visit_Class = visit_Function
    visit_Interface = visit_Function
    visit_Trait = visit_Function


class VariableAnalyzer:
    """
    Reports which variables a block reads and which it assigns.

        analyzer.analyze(stmts)     # {'used': [...], 'defined': [...]}
        analyzer.parameters(stmts)  # read before being assigned
        analyzer.locals(stmts)      # assigned but never read
    """

    def _visit(self, nodes: Union[Node, List[Node]]) -> VariableVisitor:
        visitor = VariableVisitor()
        visitor.visit([nodes] if isinstance(nodes, Node) else nodes)
        return visitor

    def analyze(self, nodes: Union[Node, List[Node]]) -> Dict[str, List[str]]:
        visitor = self._visit(nodes)
        return {'used': list(visitor.used), 'defined': list(visitor.defined)}

    def parameters(self, nodes: Union[Node, List[Node]]) -> List[str]:
        return list(self._visit(nodes).inputs)

    def locals(self, nodes: Union[Node, List[Node]]) -> List[str]:
        visitor = self._visit(nodes)
        return [name for name in visitor.defined if name not in visitor.used]
