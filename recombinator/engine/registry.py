"""
Pass Registry
=============

Static table of the known passes: id → name, description, factory and stage.
The table is built once when :mod:`recombinator.passes` is imported; the
pipeline looks passes up by id and never inspects classes at run time.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, TYPE_CHECKING

from ..errors import ConfigError

if TYPE_CHECKING:
    from .pipeline import PassContext
    from .visitor import Visitor

STAGE_MAIN = 'main'
STAGE_READABILITY = 'readability'


@dataclass(frozen=True)
class PassInfo:
    """One row of the registration table."""
    id: str
    name: str
    description: str
    factory: Callable[['PassContext'], 'Visitor']
    stage: str = STAGE_MAIN


class PassRegistry:
    """Ordered id → :class:`PassInfo` table. Order of registration is the canonical run order."""

    def __init__(self, passes: Optional[List[PassInfo]] = None):
        self._passes: Dict[str, PassInfo] = {}
        for info in passes or []:
            self.register(info)

    def register(self, info: PassInfo) -> PassInfo:
        if info.id in self._passes:
            raise ValueError(f'pass {info.id!r} registered twice')
        self._passes[info.id] = info
        return info

    def get(self, pass_id: str) -> PassInfo:
        try:
            return self._passes[pass_id]
        except KeyError:
            raise ConfigError(f'unknown pass {pass_id!r}') from None

    def ids(self, stage: str = STAGE_MAIN) -> List[str]:
        return [p.id for p in self._passes.values() if p.stage == stage]

    def resolve(self, requested: Optional[List[str]], stage: str = STAGE_MAIN) -> List[str]:
        """Validate a configured id list; ``None`` means every pass of the stage."""
        if requested is None:
            return self.ids(stage)
        for pass_id in requested:
            if self.get(pass_id).stage != stage:
                raise ConfigError(f'pass {pass_id!r} does not belong to the {stage} stage')
        return list(requested)

    def create(self, pass_id: str, context: 'PassContext') -> 'Visitor':
        return self.get(pass_id).factory(context)

    def __contains__(self, pass_id: str) -> bool:
        return pass_id in self._passes

    def __iter__(self) -> Iterator[PassInfo]:
        return iter(self._passes.values())

    def __len__(self) -> int:
        return len(self._passes)
