# core/diff.py
from typing import AbstractSet, List, Tuple


def diff_ids(
    previous: AbstractSet[str], current: AbstractSet[str]
) -> Tuple[List[str], List[str]]:
    """
    Compute (added, removed) ids between a cached collection and a fresh one.
    Both lists are sorted so log lines are stable.
    """
    added = sorted(current - previous)
    removed = sorted(previous - current)
    return added, removed
