"""
Tests for OptimizerConfig, the error taxonomy and the Result type.
"""

import json
import pytest

from recombinator.analysis.effects import EffectKind
from recombinator.config import OptimizerConfig
from recombinator.errors import ConfigError, IncludeError, ParseError, RecombinatorError
from recombinator.result import Err, Ok


# ═══════════════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════════════

class TestOptimizerConfig:

    def test_defaults(self):
        cfg = OptimizerConfig()
        assert cfg.max_rounds == 10
        assert cfg.passes is None
        assert cfg.readability is True
        assert cfg.cache_size == 1000
        assert cfg.unknown_effect is EffectKind.PURE
        assert cfg.log_level == 'WARNING'

    @pytest.mark.parametrize('kwargs', [
        {'max_rounds': 0},
        {'max_rounds': 'ten'},
        {'max_rounds': True},
        {'cache_size': False},
        {'sandbox_timeout': True},
        {'cache_size': 0},
        {'sandbox_timeout': 0},
        {'log_level': 'LOUD'},
        {'unknown_effect': 'spooky'},
        {'passes': 'const_fold'},
        {'passes': ['const_fold', 3]},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            OptimizerConfig(**kwargs)

    def test_normalization(self):
        cfg = OptimizerConfig(log_level='debug', unknown_effect='mixed')
        assert cfg.log_level == 'DEBUG'
        assert cfg.unknown_effect is EffectKind.MIXED

    def test_from_mapping(self):
        cfg = OptimizerConfig.from_mapping({'max_rounds': 3, 'readability': False})
        assert cfg.max_rounds == 3
        assert cfg.readability is False

    def test_from_mapping_unknown_keys(self):
        with pytest.raises(ConfigError, match='unknown configuration keys: bogus'):
            OptimizerConfig.from_mapping({'bogus': 1})

    def test_from_file(self, tmp_path):
        path = tmp_path / 'recombinator.json'
        path.write_text(json.dumps({'max_rounds': 4, 'passes': ['const_fold']}))
        cfg = OptimizerConfig.from_file(str(path))
        assert cfg.max_rounds == 4
        assert cfg.passes == ['const_fold']

    def test_from_file_errors(self, tmp_path):
        with pytest.raises(ConfigError):
            OptimizerConfig.from_file(str(tmp_path / 'missing.json'))
        broken = tmp_path / 'broken.json'
        broken.write_text('{not json')
        with pytest.raises(ConfigError):
            OptimizerConfig.from_file(str(broken))
        listing = tmp_path / 'list.json'
        listing.write_text('[1, 2]')
        with pytest.raises(ConfigError):
            OptimizerConfig.from_file(str(listing))

    def test_from_env(self):
        env = {'RECOMBINATOR_MAX_ROUNDS': '2', 'RECOMBINATOR_LOG_LEVEL': 'info'}
        cfg = OptimizerConfig.from_env(OptimizerConfig(readability=False), environ=env)
        assert cfg.max_rounds == 2
        assert cfg.log_level == 'INFO'
        assert cfg.readability is False

    def test_from_env_rejects_non_integer(self):
        with pytest.raises(ConfigError):
            OptimizerConfig.from_env(environ={'RECOMBINATOR_MAX_ROUNDS': 'many'})

    def test_from_env_without_overrides(self):
        assert OptimizerConfig.from_env(environ={}) == OptimizerConfig()

    def test_to_dict_round_trip(self):
        cfg = OptimizerConfig(max_rounds=7, unknown_effect=EffectKind.IO)
        data = cfg.to_dict()
        assert data['unknown_effect'] == 'IO'
        assert OptimizerConfig.from_mapping(data) == cfg


# ═══════════════════════════════════════════════════════════════════
#  Errors and Result
# ═══════════════════════════════════════════════════════════════════

class TestErrors:

    def test_hierarchy(self):
        for cls in (ParseError, IncludeError, ConfigError):
            assert issubclass(cls, RecombinatorError)

    def test_parse_error_describe(self):
        assert ParseError('unexpected ;', 3, 7, 'a.php').describe() == 'a.php:3:7: unexpected ;'
        assert str(ParseError('bad')) == '<source>: bad'

    def test_include_error(self):
        err = IncludeError('index.php', 'No such file')
        assert str(err) == 'cannot read index.php: No such file'


class TestResult:

    def test_ok(self):
        res = Ok(2)
        assert res.is_ok() and not res.is_err()
        assert res.unwrap() == 2
        assert res.map(lambda v: v * 3).unwrap() == 6
        assert res.ok() == 2

    def test_err(self):
        res = Err(ValueError('boom'))
        assert res.is_err()
        assert res.unwrap_or(5) == 5
        assert res.map(lambda v: v * 3) is res
        assert res.ok() is None
        with pytest.raises(ValueError):
            res.unwrap()
