"""
Compile-time evaluation of pure PHP expressions.
"""

from recombinator.sandbox.errors import SandboxError
from recombinator.sandbox.values import PhpArray, to_node
from recombinator.sandbox.functions import BUILTINS, FORBIDDEN, is_allowed
from recombinator.sandbox.evaluator import Evaluator, is_safe, unsafe_reason
from recombinator.sandbox.cache import CacheStats, ExecutionCache
from recombinator.sandbox.sandbox import Sandbox

__all__ = [
    'SandboxError',
    'PhpArray', 'to_node',
    'BUILTINS', 'FORBIDDEN', 'is_allowed',
    'Evaluator', 'is_safe', 'unsafe_reason',
    'CacheStats', 'ExecutionCache',
    'Sandbox',
]
