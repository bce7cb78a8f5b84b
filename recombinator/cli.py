"""
Command line interface.

    recombinator app/index.php -o build/index.php --stats

Exit codes: 0 success, 1 the entry file cannot be read or parsed,
2 usage or configuration error.
"""

import argparse
import logging
import sys
from typing import List, Optional

from tabulate import tabulate

from . import __version__
from .analysis.complexity import ComplexityMetrics
from .analysis.recovery import AbstractionRecovery, StructureAdvisor
from .analysis.separator import SideEffectSeparator
from .config import OptimizerConfig
from .engine.diff import colorize
from .errors import ConfigError, IncludeError, ParseError
from .inliner.inliner import Inliner
from .optimizer import OptimizationReport, Recombinator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='recombinator',
        description='Source-to-source optimizer for PHP programs',
    )
    p.add_argument('entry', help='Entry PHP file of the program')
    p.add_argument('-o', '--output', default=None,
                   help='Write the optimized program here (default: stdout)')
    p.add_argument('--config', default=None, help='JSON configuration file')
    p.add_argument('--max-rounds', type=int, default=None,
                   help='Upper bound on fixed-point rounds')
    p.add_argument('--no-readability', action='store_true',
                   help='Skip the readability stage')
    p.add_argument('--diff', action='store_true', help='Print the diff of every pass that changed code')
    p.add_argument('--color', action='store_true', help='Color diffs')
    p.add_argument('--stats', action='store_true',
                   help='Print per-pass changes and sandbox cache statistics')
    p.add_argument('--analyze', action='store_true',
                   help='Print complexity, effect groups and refactoring suggestions')
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='count', default=0, help='More logging (-vv for debug)')
    verbosity.add_argument('-q', '--quiet', action='store_true', help='Only log errors')
    p.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return p


def load_config(args: argparse.Namespace) -> OptimizerConfig:
    config = OptimizerConfig.from_file(args.config) if args.config else OptimizerConfig()
    config = OptimizerConfig.from_env(config)
    overrides = {}
    if args.max_rounds is not None:
        overrides['max_rounds'] = args.max_rounds
    if args.no_readability:
        overrides['readability'] = False
    if args.diff:
        overrides['diagnostics'] = True
    if args.color:
        overrides['color'] = True
    if args.verbose:
        overrides['log_level'] = 'DEBUG' if args.verbose > 1 else 'INFO'
    elif args.quiet:
        overrides['log_level'] = 'ERROR'
    if overrides:
        config = OptimizerConfig.from_mapping(dict(config.to_dict(), **overrides))
    return config


def print_diffs(report: OptimizationReport, color: bool, out) -> None:
    for diff in report.diffs:
        print(f'## {diff.pass_id} (round {diff.round}): +{diff.added} -{diff.removed}', file=out)
        print(colorize(diff.text) if color else diff.text, file=out)


def print_stats(report: OptimizationReport, out) -> None:
    rows = [(pass_id, lines, ', '.join(f'{k}={v}' for k, v in sorted(report.pass_stats.get(pass_id, {}).items())))
            for pass_id, lines in report.pass_changes.items()]
    print(report.summary(), file=out)
    print(tabulate(rows, headers=['Pass', 'Changed lines', 'Counters'], tablefmt='simple'), file=out)
    print(file=out)
    cache = report.sandbox_stats
    print(tabulate(sorted(cache.items()), headers=['Sandbox', 'Value'], tablefmt='simple'), file=out)
    if report.effect_stats:
        print(file=out)
        print(tabulate(sorted(report.effect_stats.items()), headers=['Effect', 'Statements'],
                       tablefmt='simple'), file=out)


def print_analysis(entry: str, report: OptimizationReport, out) -> None:
    before = ComplexityMetrics.from_nodes(Inliner(entry).inline(), 'before')
    after = ComplexityMetrics.from_nodes(report.nodes, 'after')
    rows = [(m.name, m.cognitive, m.cognitive_level, m.cyclomatic, m.cyclomatic_level,
             m.nesting, m.lines, m.statements) for m in (before, after)]
    print(tabulate(rows, headers=['', 'Cognitive', 'Level', 'Cyclomatic', 'Level',
                                  'Nesting', 'LOC', 'Statements'], tablefmt='simple'), file=out)
    print(before.compare_to(after).format(), file=out)
    print(file=out)

    separation = SideEffectSeparator().separate(report.nodes)
    groups = sorted(separation.groups.values(), key=lambda g: g.priority)
    print(tabulate([(g.effect.label, g.size, g.transition_count, f'{g.reorderable_percentage}%')
                    for g in groups],
                   headers=['Effect group', 'Statements', 'Transitions', 'Reorderable'],
                   tablefmt='simple'), file=out)
    print(file=out)

    candidates = AbstractionRecovery().analyze(report.nodes)
    if candidates:
        print(tabulate([(c.suggest_name(), c.effect.label, c.size, c.complexity, c.priority,
                         ', '.join('$' + v.lstrip('$') for v in c.parameters))
                        for c in candidates],
                       headers=['Function candidate', 'Effect', 'Size', 'Complexity',
                                'Priority', 'Parameters'], tablefmt='simple'), file=out)
        print(file=out)
    for improvement in StructureAdvisor().suggest(report.nodes):
        print(improvement.format(), file=out)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args)
    except ConfigError as exc:
        print(f'recombinator: {exc}', file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(level=getattr(logging, config.log_level),
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        report = Recombinator(config).optimize_file(args.entry)
    except (IncludeError, ParseError) as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    except ConfigError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as fh:
            fh.write(report.code)
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.write(report.code)

    # diagnostics go to stderr when the program itself went to stdout
    info = sys.stdout if args.output else sys.stderr
    if args.diff:
        print_diffs(report, config.color, info)
    if args.stats:
        print_stats(report, info)
    if args.analyze:
        print_analysis(args.entry, report, info)
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
