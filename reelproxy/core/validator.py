"""
Candidate validation
"""
from ..models.candidate import Candidate

DEFAULT_MIN_SEEDERS = 5


def is_valid(candidate: Candidate, min_seeders: int = DEFAULT_MIN_SEEDERS) -> bool:
    """True when the candidate is worth scoring at all."""
    return (
        candidate.seeders >= min_seeders
        and bool(candidate.locator)
        and bool(candidate.title)
        and candidate.size_bytes > 0
    )
