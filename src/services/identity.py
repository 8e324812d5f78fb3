"""
Employee name resolution against the reference roster.

Spoken names arrive with spelling variations (Jon / John, Corey / Cory). A name
is resolved to the roster's canonical spelling when it matches exactly after
normalization, or when its edit-distance similarity to an active employee
reaches the threshold. Otherwise the spoken name is kept as-is.
"""

from dataclasses import dataclass
from typing import Iterable

from core.config import NAME_MATCH_THRESHOLD
from models.reports import RosterEntry


@dataclass(frozen=True)
class NameResolution:
    """Outcome of resolving one spoken name."""

    spoken_name: str
    name: str
    matched: bool
    score: float
    employee_id: str | None = None


def normalize_name(name: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(name.split()).lower()


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance with unit-cost insertions, deletions and substitutions."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    if not s2:
        return len(s1)

    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            cost = 0 if c1 == c2 else 1
            current.append(
                min(
                    previous[j] + 1,         # deletion
                    current[j - 1] + 1,      # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def name_similarity(s1: str, s2: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]; 1.0 means identical."""
    s1, s2 = normalize_name(s1), normalize_name(s2)
    if s1 == s2:
        return 1.0
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 0.0
    return 1.0 - levenshtein_distance(s1, s2) / max_len


def resolve_name(
    spoken_name: str,
    roster: Iterable[RosterEntry],
    threshold: float = NAME_MATCH_THRESHOLD,
) -> NameResolution:
    """
    Resolve a spoken name against the roster.

    1. Exact match (case and whitespace insensitive) against any roster entry
       returns score 1.0.
    2. Otherwise the best similarity over active entries is taken; the first
       entry wins ties.
    3. A best score at or above `threshold` returns the canonical spelling,
       anything lower keeps the spoken name with matched=False.
    """
    roster = list(roster)
    target = normalize_name(spoken_name or "")
    if not target:
        return NameResolution(spoken_name, spoken_name, matched=False, score=0.0)

    for entry in roster:
        if normalize_name(entry.name) == target:
            return NameResolution(spoken_name, entry.name, True, 1.0, entry.id)

    best: RosterEntry | None = None
    best_score = 0.0
    for entry in roster:
        if not entry.active:
            continue
        score = name_similarity(target, entry.name)
        if score > best_score:
            best, best_score = entry, score

    if best is not None and best_score >= threshold:
        return NameResolution(spoken_name, best.name, True, best_score, best.id)
    return NameResolution(spoken_name, spoken_name, matched=False, score=best_score)
