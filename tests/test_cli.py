"""
Tests for the ``recombinator`` command line.
"""

import json
import pytest

from recombinator import __version__
from recombinator.cli import EXIT_FATAL, EXIT_OK, EXIT_USAGE, build_parser, load_config, main


@pytest.fixture
def entry(tmp_path):
    path = tmp_path / 'index.php'
    path.write_text('<?php $a = 5; $b = 10; echo $a + $b;')
    return str(path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('RECOMBINATOR_MAX_ROUNDS', 'RECOMBINATOR_LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)


class TestMain:

    def test_optimized_program_on_stdout(self, entry, capsys):
        assert main([entry]) == EXIT_OK
        assert capsys.readouterr().out == '<?php\n\necho 15;\n'

    def test_output_file(self, entry, tmp_path, capsys):
        target = tmp_path / 'out.php'
        assert main([entry, '-o', str(target)]) == EXIT_OK
        assert target.read_text() == '<?php\n\necho 15;\n'
        assert capsys.readouterr().out == ''

    def test_stats_go_to_stderr_when_program_on_stdout(self, entry, capsys):
        assert main([entry, '--stats']) == EXIT_OK
        captured = capsys.readouterr()
        assert captured.out == '<?php\n\necho 15;\n'
        assert 'converged' in captured.err
        assert 'var_to_scalar' in captured.err
        assert 'hit_rate' in captured.err

    def test_stats_on_stdout_with_output_file(self, entry, tmp_path, capsys):
        assert main([entry, '-o', str(tmp_path / 'out.php'), '--stats']) == EXIT_OK
        assert 'Changed lines' in capsys.readouterr().out

    def test_diff(self, entry, capsys):
        assert main([entry, '--diff', '--max-rounds', '1']) == EXIT_OK
        err = capsys.readouterr().err
        assert '## var_to_scalar (round 1)' in err
        assert '--- var_to_scalar (before)' in err

    def test_analyze(self, entry, capsys):
        assert main([entry, '--analyze']) == EXIT_OK
        err = capsys.readouterr().err
        assert 'Cognitive' in err
        assert 'Effect group' in err

    def test_inlines_includes(self, tmp_path, capsys):
        (tmp_path / 'lib.php').write_text('<?php function triple($x) { return $x * 3; }')
        index = tmp_path / 'index.php'
        index.write_text("<?php require_once 'lib.php'; echo triple(4);")
        assert main([str(index)]) == EXIT_OK
        assert capsys.readouterr().out == '<?php\n\necho 12;\n'

    def test_missing_entry(self, tmp_path):
        assert main([str(tmp_path / 'missing.php')]) == EXIT_FATAL

    def test_parse_error(self, tmp_path):
        path = tmp_path / 'bad.php'
        path.write_text('<?php echo ;')
        assert main([str(path)]) == EXIT_FATAL

    def test_bad_config_file(self, entry, tmp_path):
        config = tmp_path / 'config.json'
        config.write_text(json.dumps({'max_rounds': 'many'}))
        assert main([entry, '--config', str(config)]) == EXIT_USAGE

    def test_bad_round_count(self, entry):
        assert main([entry, '--max-rounds', '0']) == EXIT_USAGE

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(['--version'])
        assert exc.value.code == 0
        assert capsys.readouterr().out.strip() == f'recombinator {__version__}'

    def test_missing_argument(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2


class TestLoadConfig:

    def test_flags_override_file(self, tmp_path):
        config = tmp_path / 'config.json'
        config.write_text(json.dumps({'max_rounds': 4, 'readability': True}))
        args = build_parser().parse_args(
            ['index.php', '--config', str(config), '--no-readability', '-vv'])
        cfg = load_config(args)
        assert cfg.max_rounds == 4
        assert cfg.readability is False
        assert cfg.log_level == 'DEBUG'

    def test_environment_applies_before_flags(self, monkeypatch):
        monkeypatch.setenv('RECOMBINATOR_MAX_ROUNDS', '3')
        cfg = load_config(build_parser().parse_args(['index.php']))
        assert cfg.max_rounds == 3
        cfg = load_config(build_parser().parse_args(['index.php', '--max-rounds', '6']))
        assert cfg.max_rounds == 6

    def test_quiet(self):
        cfg = load_config(build_parser().parse_args(['index.php', '-q', '--diff']))
        assert cfg.log_level == 'ERROR'
        assert cfg.diagnostics is True
