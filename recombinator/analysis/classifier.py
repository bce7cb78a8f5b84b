"""
Side-Effect Classifier
======================

Maps a node to an :class:`~recombinator.analysis.effects.EffectKind`.

Rules, first match wins:

  1. statement wrappers delegate to their expression;
  2. ``echo``/``print``/``exit``/inline HTML are ``IO``;
  3. ``eval`` is ``GLOBAL_STATE``, ``include``/``require`` are ``MIXED``;
  4. function calls are looked up in the category tables below; known pure
     builtins are ``PURE``; anything else (user functions, dynamic names,
     methods, static calls, ``new``) is ``MIXED`` unless the method name
     identifies a database or HTTP client call;
  5. superglobal reads are ``EXTERNAL_STATE``, other variables ``PURE``;
  6. composite nodes combine their children;
  7. assignments to external/global state take that kind, otherwise
     target and value are combined.

Leaf literals are ``PURE``. Node kinds none of the rules know get the
configured fallback (``PURE`` by default).
"""

import logging
from typing import Iterable, Optional

from ..syntax.nodes import Node, name_of, walk
from .effects import EffectKind

logger = logging.getLogger(__name__)


IO_FUNCTIONS = frozenset({
    # console
    'echo', 'print', 'printf', 'vprintf', 'sprintf', 'fprintf',
    'var_dump', 'var_export', 'print_r', 'debug_zval_dump', 'debug_print_backtrace',
    # file reads
    'file_get_contents', 'file', 'readfile', 'fopen', 'fread',
    'fgets', 'fgetss', 'fgetc', 'fgetcsv', 'fscanf',
    # file writes
    'file_put_contents', 'fwrite', 'fputs', 'fputcsv',
    # filesystem operations
    'unlink', 'rmdir', 'mkdir', 'chmod', 'chown', 'chgrp',
    'touch', 'symlink', 'link', 'copy', 'rename',
    'tmpfile', 'tempnam', 'fclose', 'fflush',
    # directories
    'opendir', 'readdir', 'closedir', 'rewinddir', 'scandir',
    'glob', 'is_dir', 'is_file', 'is_link', 'is_readable',
    'is_writable', 'is_executable', 'file_exists',
    # streams
    'stream_get_contents', 'stream_copy_to_stream',
})

DATABASE_FUNCTIONS = frozenset({
    'mysqli_query', 'mysqli_execute', 'mysqli_prepare',
    'mysqli_stmt_execute', 'mysqli_multi_query',
    'mysql_query', 'mysql_db_query', 'mysql_unbuffered_query',
    'pg_query', 'pg_execute', 'pg_prepare', 'pg_query_params',
    'oci_execute', 'oci_parse', 'oci_statement_type',
    'sqlite_query', 'sqlite_exec', 'sqlite_array_query',
})

HTTP_FUNCTIONS = frozenset({
    'curl_exec', 'curl_init', 'curl_multi_exec',
    'fsockopen', 'socket_connect', 'socket_create', 'socket_send',
    'socket_write', 'socket_read', 'socket_recv',
    'stream_socket_client', 'stream_socket_server',
    'stream_socket_accept', 'stream_socket_sendto',
    'mail',
})

NON_DETERMINISTIC_FUNCTIONS = frozenset({
    'rand', 'mt_rand', 'random_int', 'random_bytes',
    'srand', 'mt_srand', 'shuffle', 'array_rand',
    'time', 'microtime', 'date', 'gmdate', 'strtotime',
    'gettimeofday', 'localtime', 'getdate', 'idate',
    'uniqid', 'com_create_guid',
    'getmypid', 'getmyuid', 'getmygid', 'getlastmod',
})

GLOBAL_STATE_FUNCTIONS = frozenset({
    'ini_set', 'ini_alter', 'ini_restore', 'set_time_limit',
    'set_include_path', 'restore_include_path',
    'putenv', 'apache_setenv',
    'set_error_handler', 'set_exception_handler',
    'register_shutdown_function', 'register_tick_function',
    'eval', 'assert', 'create_function',
    'header', 'setcookie', 'setrawcookie',
    'session_start', 'session_destroy', 'session_regenerate_id',
    'session_write_close', 'session_commit',
})

PURE_FUNCTIONS = frozenset({
    # math
    'abs', 'acos', 'asin', 'atan', 'ceil', 'cos', 'exp', 'floor',
    'log', 'max', 'min', 'pow', 'round', 'sin', 'sqrt', 'tan',
    # strings
    'strlen', 'strtolower', 'strtoupper', 'substr', 'trim',
    'ltrim', 'rtrim', 'str_replace', 'strpos', 'explode', 'implode',
    'ucfirst', 'lcfirst', 'ucwords', 'md5', 'sha1',
    # arrays
    'array_merge', 'array_keys', 'array_values', 'array_map',
    'array_filter', 'array_slice', 'count', 'in_array',
    'array_search', 'sort', 'rsort', 'ksort',
    # types
    'is_array', 'is_string', 'is_int', 'is_bool', 'is_null',
    'is_numeric', 'intval', 'floatval', 'strval', 'boolval',
})

SUPERGLOBALS = frozenset({
    '_GET', '_POST', '_REQUEST', '_COOKIE', '_SESSION',
    '_SERVER', '_ENV', '_FILES', 'GLOBALS',
})

DATABASE_METHODS = frozenset({'query', 'exec', 'prepare', 'execute'})
HTTP_METHODS = frozenset({'get', 'post', 'put', 'delete', 'request', 'send'})

_FUNCTION_TABLES = (
    (IO_FUNCTIONS, EffectKind.IO),
    (DATABASE_FUNCTIONS, EffectKind.DATABASE),
    (HTTP_FUNCTIONS, EffectKind.HTTP),
    (NON_DETERMINISTIC_FUNCTIONS, EffectKind.NON_DETERMINISTIC),
    (GLOBAL_STATE_FUNCTIONS, EffectKind.GLOBAL_STATE),
)

_PURE_LEAVES = frozenset({
    'String', 'Int', 'Float', 'ConstFetch', 'MagicConst', 'Name',
    'ClassConstFetch', 'Nop', 'Break', 'Continue',
})

_COMPOSITE = frozenset({
    'If', 'ElseIf', 'Else', 'While', 'DoWhile', 'For', 'Foreach', 'Switch', 'Case',
    'Try', 'Catch', 'Finally', 'Block', 'Return', 'Throw', 'Unset',
    'Ternary', 'BinaryOp', 'UnaryOp', 'IncDec', 'Cast', 'Array', 'ArrayItem',
    'Isset', 'Empty', 'Interpolated', 'Match', 'MatchArm', 'Arg', 'Instanceof',
    'PropertyFetch', 'StaticPropertyFetch', 'ErrorSuppress', 'Clone',
})

_IO_KINDS = frozenset({'Echo', 'Print', 'Exit', 'InlineHTML', 'ShellExec'})


def is_pure_function(name: str) -> bool:
    return name.lower() in PURE_FUNCTIONS


class SideEffectClassifier:
    """
    Classifies nodes by side effect.

    Args:
        unknown: kind returned for node kinds the rules do not cover
    """

    def __init__(self, unknown: EffectKind = EffectKind.PURE):
        self.unknown = unknown

    def classify(self, node: Node) -> EffectKind:
        kind = node.kind
        if kind == 'Expression':
            return self.classify(node.expr)
        if kind in _IO_KINDS:
            return EffectKind.IO
        if kind == 'Eval':
            return EffectKind.GLOBAL_STATE
        if kind == 'Include':
            return EffectKind.MIXED
        if kind == 'FuncCall':
            return self._function_call(node)
        if kind == 'MethodCall':
            return self._method_call(node.name)
        if kind == 'StaticCall':
            return self._method_call(node.name)
        if kind == 'New':
            return EffectKind.MIXED
        if kind == 'Variable':
            return self._variable(node)
        if kind == 'ArrayDimFetch':
            return self._array_access(node)
        if kind in ('Assign', 'AssignOp', 'AssignRef'):
            return self._assignment(node)
        if kind in ('Global', 'Static'):
            return EffectKind.GLOBAL_STATE
        if kind in _PURE_LEAVES:
            return EffectKind.PURE
        if kind in _COMPOSITE:
            return self._children(node)
        return self.unknown

    def classify_block(self, nodes: Iterable[Node]) -> EffectKind:
        """Left fold of ``combine`` over a statement sequence."""
        combined = EffectKind.PURE
        for node in nodes:
            if not isinstance(node, Node):
                continue
            combined = combined.combine(self.classify(node))
            if combined is EffectKind.MIXED:
                break
        return combined

    def _function_call(self, node: Node) -> EffectKind:
        name = name_of(node.name) if node.name.kind == 'Name' else None
        if not name:
            return EffectKind.MIXED
        name = name.lower()
        effect = None
        for table, kind in _FUNCTION_TABLES:
            if name in table:
                effect = kind
                break
        if effect is None:
            if not is_pure_function(name):
                return EffectKind.MIXED
            effect = EffectKind.PURE
        return effect.combine(self.classify_block(node.args))

    @staticmethod
    def _method_call(name) -> EffectKind:
        if not isinstance(name, str):
            return EffectKind.MIXED
        name = name.lower()
        if name in DATABASE_METHODS:
            return EffectKind.DATABASE
        if name in HTTP_METHODS:
            return EffectKind.HTTP
        return EffectKind.MIXED

    def _variable(self, node: Node) -> EffectKind:
        if isinstance(node.name, str):
            if node.name in SUPERGLOBALS:
                return EffectKind.EXTERNAL_STATE
            return EffectKind.PURE
        return self.classify(node.name)

    def _array_access(self, node: Node) -> EffectKind:
        effect = self.classify(node.var)
        if effect is EffectKind.EXTERNAL_STATE:
            return effect
        if node.dim is not None:
            return effect.combine(self.classify(node.dim))
        return effect

    def _assignment(self, node: Node) -> EffectKind:
        target = self.classify(node.var)
        if target in (EffectKind.EXTERNAL_STATE, EffectKind.GLOBAL_STATE):
            return target
        return target.combine(self.classify(node.expr))

    def _children(self, node: Node) -> EffectKind:
        return self.classify_block(node.child_nodes())


def mark_effects(nodes: Iterable[Node], classifier: Optional[SideEffectClassifier] = None) -> None:
    """Store ``side_effect`` on every node of the tree that has none yet."""
    classifier = classifier or SideEffectClassifier()
    for node in walk(list(nodes)):
        if not isinstance(node.get_attr('side_effect'), EffectKind):
            node.set_attr('side_effect', classifier.classify(node))
