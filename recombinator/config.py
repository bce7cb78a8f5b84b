"""
Optimizer Configuration
=======================

A single dataclass carries every tunable of a run. It can be built directly,
from a mapping (e.g. a decoded JSON file) or from the environment:

    >>> cfg = OptimizerConfig(max_rounds=5, readability=False)
    >>> cfg = OptimizerConfig.from_file('recombinator.json')
    >>> cfg = OptimizerConfig.from_env(cfg)

``RECOMBINATOR_MAX_ROUNDS`` and ``RECOMBINATOR_LOG_LEVEL`` override the
corresponding fields.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional

from .analysis.effects import EffectKind
from .errors import ConfigError

logger = logging.getLogger(__name__)

_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class OptimizerConfig:
    """Tunables of one optimization run."""
    max_rounds: int = 10
    passes: Optional[List[str]] = None          # None = full catalog, canonical order
    readability: bool = True
    readability_passes: Optional[List[str]] = None
    sandbox_timeout: float = 1.0                # seconds per evaluation
    cache_size: int = 1000
    diagnostics: bool = False                   # collect per-pass diffs
    color: bool = False
    unknown_effect: EffectKind = EffectKind.PURE
    log_level: str = 'WARNING'

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not _is_int(self.max_rounds) or self.max_rounds < 1:
            raise ConfigError(f'max_rounds must be a positive integer, got {self.max_rounds!r}')
        if not _is_int(self.cache_size) or self.cache_size < 1:
            raise ConfigError(f'cache_size must be a positive integer, got {self.cache_size!r}')
        if isinstance(self.sandbox_timeout, bool) \
                or not isinstance(self.sandbox_timeout, (int, float)) or self.sandbox_timeout <= 0:
            raise ConfigError(f'sandbox_timeout must be positive, got {self.sandbox_timeout!r}')
        if str(self.log_level).upper() not in _LOG_LEVELS:
            raise ConfigError(f'unknown log level {self.log_level!r}')
        self.log_level = str(self.log_level).upper()
        if isinstance(self.unknown_effect, str):
            try:
                self.unknown_effect = EffectKind[self.unknown_effect.upper()]
            except KeyError:
                raise ConfigError(f'unknown effect kind {self.unknown_effect!r}') from None
        for name in ('passes', 'readability_passes'):
            value = getattr(self, name)
            if value is not None and (
                    not isinstance(value, (list, tuple))
                    or not all(isinstance(v, str) for v in value)):
                raise ConfigError(f'{name} must be a list of pass ids')

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'OptimizerConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f'unknown configuration keys: {", ".join(unknown)}')
        return cls(**dict(data))

    @classmethod
    def from_file(cls, path: str) -> 'OptimizerConfig':
        try:
            with open(path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise ConfigError(f'cannot load configuration from {path}: {exc}') from exc
        if not isinstance(data, dict):
            raise ConfigError(f'{path}: configuration must be a JSON object')
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, base: Optional['OptimizerConfig'] = None,
                 environ: Optional[Mapping[str, str]] = None) -> 'OptimizerConfig':
        environ = os.environ if environ is None else environ
        base = base or cls()
        overrides: Dict[str, Any] = {}
        if 'RECOMBINATOR_MAX_ROUNDS' in environ:
            try:
                overrides['max_rounds'] = int(environ['RECOMBINATOR_MAX_ROUNDS'])
            except ValueError:
                raise ConfigError('RECOMBINATOR_MAX_ROUNDS must be an integer') from None
        if 'RECOMBINATOR_LOG_LEVEL' in environ:
            overrides['log_level'] = environ['RECOMBINATOR_LOG_LEVEL']
        if overrides:
            logger.debug("Configuration overridden from environment: %s", overrides)
        return replace(base, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['unknown_effect'] = self.unknown_effect.name
        return data
