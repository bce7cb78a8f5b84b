"""
Side-Effect Lattice
===================

Every node is assigned an ``EffectKind``. The kinds form a join-semilattice
with ``PURE`` as bottom and ``MIXED`` as top:

                     MIXED
       /    /    /     |     \\     \\      \\
     IO  DB  HTTP  GLOBAL  EXTERNAL  NONDET
       \\    \\    \\     |     /     /      /
                      PURE

    combine(PURE, x)  = x
    combine(x, x)     = x
    combine(x, MIXED) = MIXED
    combine(x, y)     = MIXED   for distinct non-pure x, y

``combine`` is commutative and associative, so a block can be classified by a
left fold that stops early once ``MIXED`` is reached.
"""

from enum import Enum
from functools import reduce
from typing import Iterable


class EffectKind(Enum):
    """Kind of side effect a node may have."""
    PURE = 'pure'
    NON_DETERMINISTIC = 'non_deterministic'
    EXTERNAL_STATE = 'external_state'
    IO = 'io'
    GLOBAL_STATE = 'global_state'
    DATABASE = 'database'
    HTTP = 'http'
    MIXED = 'mixed'

    def combine(self, other: 'EffectKind') -> 'EffectKind':
        if self is EffectKind.MIXED or other is EffectKind.MIXED:
            return EffectKind.MIXED
        if self is other:
            return self
        if self is EffectKind.PURE:
            return other
        if other is EffectKind.PURE:
            return self
        return EffectKind.MIXED

    @property
    def priority(self) -> int:
        """Ordering used when grouping and reporting (higher = more dangerous)."""
        return _PRIORITY[self]

    def is_pure(self) -> bool:
        return self is EffectKind.PURE

    def is_compile_time_evaluable(self) -> bool:
        return self is EffectKind.PURE

    def is_cacheable(self) -> bool:
        """Results may be memoized (pure code and reads of external state)."""
        return self in (EffectKind.PURE, EffectKind.EXTERNAL_STATE)

    def is_reorderable(self) -> bool:
        return self is EffectKind.PURE

    def is_deterministic(self) -> bool:
        return self not in (EffectKind.NON_DETERMINISTIC, EffectKind.MIXED,
                            EffectKind.HTTP, EffectKind.DATABASE)

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_PRIORITY = {
    EffectKind.PURE: 0,
    EffectKind.NON_DETERMINISTIC: 1,
    EffectKind.EXTERNAL_STATE: 2,
    EffectKind.IO: 3,
    EffectKind.GLOBAL_STATE: 4,
    EffectKind.DATABASE: 5,
    EffectKind.HTTP: 6,
    EffectKind.MIXED: 7,
}

_DESCRIPTIONS = {
    EffectKind.PURE: 'Pure computation without side effects',
    EffectKind.NON_DETERMINISTIC: 'Result differs between runs (time, random)',
    EffectKind.EXTERNAL_STATE: 'Reads request or environment state',
    EffectKind.IO: 'Console or file input/output',
    EffectKind.GLOBAL_STATE: 'Changes process-wide state',
    EffectKind.DATABASE: 'Database access',
    EffectKind.HTTP: 'Network access',
    EffectKind.MIXED: 'Several kinds of side effects, or unknown',
}

_LABELS = {
    EffectKind.PURE: 'Computation',
    EffectKind.NON_DETERMINISTIC: 'Non-deterministic values',
    EffectKind.EXTERNAL_STATE: 'Read global state',
    EffectKind.IO: 'Output',
    EffectKind.GLOBAL_STATE: 'Global state changes',
    EffectKind.DATABASE: 'Database',
    EffectKind.HTTP: 'Network',
    EffectKind.MIXED: 'Other',
}


def combine_all(kinds: Iterable[EffectKind]) -> EffectKind:
    """Left fold of ``combine`` over ``kinds`` (``PURE`` for an empty input)."""
    return reduce(EffectKind.combine, kinds, EffectKind.PURE)
