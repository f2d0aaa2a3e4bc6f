"""
Candidate scoring
Additive score built from independent signal terms. Every term is its own
function so weights can be tuned and audited one at a time.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from ..models.candidate import Candidate, ScoredCandidate

SEEDER_CAP = 80
HEALTH_CAP = 20

RESOLUTION_TIERS = [
    (("2160p", "4k"), 25),
    (("1080p",), 20),
    (("720p",), 15),
    (("480p",), 5),
]

GOOD_GROUPS = ['yify', 'rarbg', 'fgt', 'sparks', 'cmrg', 'yts', 'eztv']
GROUP_BONUS = 10

EFFICIENT_CODECS = ('x265', 'h265')
LEGACY_CODECS = ('x264', 'h264')

IMMERSIVE_AUDIO = ('atmos',)
MULTICHANNEL_AUDIO = ('5.1', '7.1')

VERIFIED_BONUS = 10
RECENT_BONUS = 5
RECENT_DAYS = 365


def seeder_term(candidate: Candidate) -> float:
    return float(min(candidate.seeders * 2, SEEDER_CAP))


def health_term(candidate: Candidate) -> float:
    ratio = candidate.seeders / (candidate.leechers + 1)
    return float(min(ratio * 10, HEALTH_CAP))


def resolution_term(candidate: Candidate) -> float:
    title = candidate.title.lower()
    for markers, bonus in RESOLUTION_TIERS:
        if any(marker in title for marker in markers):
            return float(bonus)
    return 0.0


def size_term(candidate: Candidate) -> float:
    # Sensible ranges are checked before the extremes.
    size_gb = candidate.size_gb
    if 1 <= size_gb <= 10:
        return 15.0
    if 10 <= size_gb <= 20:
        return 10.0
    if size_gb < 0.5:
        return -20.0  # likely fake
    if size_gb > 50:
        return -15.0
    return 0.0


def group_term(candidate: Candidate) -> float:
    title = candidate.title.lower()
    if any(group in title for group in GOOD_GROUPS):
        return float(GROUP_BONUS)
    return 0.0


def codec_term(candidate: Candidate) -> float:
    title = candidate.title.lower()
    if any(codec in title for codec in EFFICIENT_CODECS):
        return 8.0
    if any(codec in title for codec in LEGACY_CODECS):
        return 5.0
    return 0.0


def audio_term(candidate: Candidate) -> float:
    title = candidate.title.lower()
    if any(marker in title for marker in IMMERSIVE_AUDIO):
        return 8.0
    if any(marker in title for marker in MULTICHANNEL_AUDIO):
        return 5.0
    return 0.0


def verified_term(candidate: Candidate) -> float:
    return float(VERIFIED_BONUS) if candidate.verified else 0.0


def recency_term(candidate: Candidate, now: Optional[datetime] = None) -> float:
    if candidate.upload_date is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    uploaded = candidate.upload_date
    if uploaded.tzinfo is None:
        uploaded = uploaded.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    age_days = (now - uploaded).total_seconds() / 86400.0
    if age_days < RECENT_DAYS:
        return float(RECENT_BONUS)
    return 0.0


def score_breakdown(candidate: Candidate, now: Optional[datetime] = None) -> Dict[str, float]:
    """Per-term contributions, before the zero floor is applied."""
    return {
        "seeders": seeder_term(candidate),
        "health": health_term(candidate),
        "resolution": resolution_term(candidate),
        "size": size_term(candidate),
        "group": group_term(candidate),
        "codec": codec_term(candidate),
        "audio": audio_term(candidate),
        "verified": verified_term(candidate),
        "recency": recency_term(candidate, now),
    }


def score(candidate: Candidate, now: Optional[datetime] = None) -> float:
    """Total score, floored at zero."""
    return max(sum(score_breakdown(candidate, now).values()), 0.0)


def score_candidate(candidate: Candidate, now: Optional[datetime] = None) -> ScoredCandidate:
    breakdown = score_breakdown(candidate, now)
    return ScoredCandidate(
        candidate=candidate,
        score=max(sum(breakdown.values()), 0.0),
        breakdown=breakdown,
    )
