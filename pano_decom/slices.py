"""Member-list helpers."""

from typing import Iterable, List, Set


def remove_from_slice(items: Iterable[str], exclude: str) -> List[str]:
    """
    Return a new list without any occurrence of ``exclude``.

    Remaining duplicates collapse to their first occurrence and the original
    order is kept, so applying it twice gives the same result as once.
    """
    seen: Set[str] = set()
    out: List[str] = []
    for item in items:
        if item == exclude or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out
