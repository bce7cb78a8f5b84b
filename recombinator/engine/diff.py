"""
Per-Pass Diffs
==============

Observational only: the pipeline records what each pass changed, the values
never feed back into pass decisions.
"""

import difflib
from dataclasses import dataclass
from typing import Tuple

_RED = '\033[31m'
_GREEN = '\033[32m'
_CYAN = '\033[36m'
_RESET = '\033[0m'


@dataclass
class PassDiff:
    """Unified diff of one pass application."""
    pass_id: str
    round: int
    text: str
    added: int
    removed: int

    @property
    def changed_lines(self) -> int:
        return self.added + self.removed


def count_changes(before: str, after: str) -> Tuple[int, int]:
    """``(added, removed)`` line counts between two printed programs."""
    added = removed = 0
    for line in difflib.unified_diff(before.splitlines(), after.splitlines(), lineterm='', n=0):
        if line.startswith('+++') or line.startswith('---'):
            continue
        if line.startswith('+'):
            added += 1
        elif line.startswith('-'):
            removed += 1
    return added, removed


def make_diff(pass_id: str, round_no: int, before: str, after: str) -> PassDiff:
    lines = difflib.unified_diff(
        before.splitlines(), after.splitlines(),
        fromfile=f'{pass_id} (before)', tofile=f'{pass_id} (after)', lineterm='',
    )
    text = '\n'.join(lines)
    added, removed = count_changes(before, after)
    return PassDiff(pass_id, round_no, text, added, removed)


def colorize(text: str) -> str:
    """ANSI-colored rendering of a unified diff."""
    out = []
    for line in text.splitlines():
        if line.startswith('+++') or line.startswith('---') or line.startswith('@@'):
            out.append(_CYAN + line + _RESET)
        elif line.startswith('+'):
            out.append(_GREEN + line + _RESET)
        elif line.startswith('-'):
            out.append(_RED + line + _RESET)
        else:
            out.append(line)
    return '\n'.join(out)
