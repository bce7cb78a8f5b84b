"""
Sandbox
=======

Compile-time evaluation of pure expressions.

    >>> sandbox = Sandbox()
    >>> sandbox.execute(parse_expression("strtoupper('abc')"))
    Ok(value='ABC')
    >>> sandbox.execute(parse_expression("intdiv(1, 0)"))
    Err(error=SandboxError('division by zero', code=1))
    >>> sandbox.execute(parse_expression("exec('ls')")) is None
    True

``execute`` returns ``None`` when the expression is not safe to evaluate
(the caller leaves it alone), ``Ok(value)`` on success and ``Err(error)`` on a
runtime failure. Successful results are memoized in an
:class:`~recombinator.sandbox.cache.ExecutionCache`.
"""

import hashlib
import logging
from typing import Any, Dict, Mapping, Optional, Union

from ..result import Err, Ok
from ..syntax.nodes import Node, is_literal
from ..syntax.printer import print_expr
from .cache import ExecutionCache
from .errors import SandboxError
from .evaluator import Evaluator, unsafe_reason
from .values import PhpArray

logger = logging.getLogger(__name__)

_MISSING = object()


def _serialize(value: Any) -> str:
    if isinstance(value, PhpArray):
        inner = ','.join(f'{k!r}=>{_serialize(v)}' for k, v in value.items())
        return f'[{inner}]'
    return f'{type(value).__name__}:{value!r}'


class Sandbox:
    """
    Restricted evaluator with an LRU result cache.

    Args:
        cache_size: maximum number of memoized results
        timeout: wall-clock budget per evaluation, in seconds
        cache: share an existing cache instead of creating one
    """

    def __init__(self, cache_size: int = 1000, timeout: float = 1.0,
                 cache: Optional[ExecutionCache] = None):
        self.cache = cache if cache is not None else ExecutionCache(cache_size)
        self.timeout = timeout
        self.rejected = 0
        self.failed = 0

    @staticmethod
    def cache_key(node: Node, context: Optional[Mapping[str, Any]] = None) -> str:
        parts = [print_expr(node)]
        for name in sorted(context or {}):
            parts.append(f'{name}={_serialize(context[name])}')
        return hashlib.md5('\n'.join(parts).encode('utf-8')).hexdigest()

    @staticmethod
    def context_from_nodes(nodes: Mapping[str, Node]) -> Dict[str, Any]:
        """Literal nodes converted to values; anything else is dropped."""
        context = {}
        for name, node in nodes.items():
            if isinstance(node, Node) and is_literal(node):
                try:
                    context[name] = Evaluator().evaluate(node)
                except SandboxError:
                    continue
        return context

    def execute(self, node: Node,
                context: Optional[Mapping[str, Any]] = None) -> Union[None, Ok, Err]:
        context = dict(context or {})
        reason = unsafe_reason(node, context)
        if reason is not None:
            self.rejected += 1
            logger.debug("Sandbox rejected %s: %s", node.kind, reason)
            return None

        key = self.cache_key(node, context)
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            logger.debug("Sandbox cache hit for %s", key)
            return Ok(cached)

        try:
            value = Evaluator(context, self.timeout).evaluate(node)
        except SandboxError as exc:
            self.failed += 1
            if exc.code == SandboxError.TIMEOUT:
                logger.warning("Sandbox timeout evaluating %s", print_expr(node))
            else:
                logger.debug("Sandbox error: %s", exc.message)
            return Err(exc)

        self.cache.set(key, value)
        return Ok(value)

    @staticmethod
    def is_error(result: Any) -> bool:
        return isinstance(result, Err) or isinstance(result, SandboxError)

    def cache_stats(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        stats['rejected'] = self.rejected
        stats['failed'] = self.failed
        return stats
