"""Accent-insensitive municipality name search for autocomplete."""

from typing import Dict, List, Sequence

from processing.models import MunicipalityEntry
from processing.name_matching import normalize

DEFAULT_LIMIT = 8


def search(index: Sequence[MunicipalityEntry], query: str, limit: int = DEFAULT_LIMIT) -> List[MunicipalityEntry]:
    """
    Up to ``limit`` entries whose name contains the query.

    Names starting with the query come first; otherwise index order is kept.
    A blank query returns the first ``limit`` entries unfiltered.
    """
    needle = normalize(query)
    if not needle:
        return list(index[:limit])

    matches = []
    for entry in index:
        name = normalize(entry.name)
        if needle in name:
            matches.append((0 if name.startswith(needle) else 1, entry))

    # sorted() is stable, so equal ranks keep index order
    matches = sorted(matches, key=lambda item: item[0])
    return [entry for _, entry in matches[:limit]]


def group_by_department(index: Sequence[MunicipalityEntry]) -> Dict[str, List[str]]:
    """Department name -> entity ids of its municipalities, in index order."""
    groups: Dict[str, List[str]] = {}
    for entry in index:
        if not entry.id or not entry.department:
            continue
        groups.setdefault(entry.department, []).append(entry.id)
    return groups
