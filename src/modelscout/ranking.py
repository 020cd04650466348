"""
Candidate ranking.

Scores each candidate on six independent axes, each in [0, 1]:

- size fit: estimated memory need against the caller's budget
- quantization quality: best available variant on the candidate
- freshness: days since the last modification
- popularity: downloads and likes normalised against the batch maximum
- task fit: tags / pipeline against the requested task
- conversational support: whether the model advertises chat use

The composite is a fixed weighted sum. Scoring is a pure function of the
candidate, the preferences, the batch maxima and the reference time ``now``,
so equal inputs always give equal output.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .extractor import Candidate
from .quant_utils import MAX_QUANT_LEVEL, quant_level

WEIGHTS: Dict[str, float] = {
    "size": 0.20,
    "quant": 0.15,
    "freshness": 0.15,
    "popularity": 0.20,
    "task": 0.20,
    "chat": 0.10,
}

# Approximate memory (GB) needed per parameter-size token.
PARAM_SIZE_GB: Dict[str, float] = {
    "1B": 0.5,
    "1.5B": 0.8,
    "2B": 1.0,
    "3B": 1.5,
    "4B": 2.0,
    "7B": 3.5,
    "8B": 4.0,
    "9B": 4.5,
    "13B": 6.5,
    "14B": 7.0,
    "15B": 7.5,
    "20B": 10.0,
    "30B": 15.0,
    "33B": 16.5,
    "34B": 17.0,
    "35B": 17.5,
    "40B": 20.0,
    "65B": 32.5,
    "70B": 35.0,
    "72B": 36.0,
    "110B": 55.0,
    "120B": 60.0,
    "180B": 90.0,
    "405B": 202.5,
}
DEFAULT_RAM_ESTIMATE_GB = 4.0

# (ratio strictly above, score), checked in order; 1.0 otherwise.
SIZE_FIT_THRESHOLDS: Tuple[Tuple[float, float], ...] = (
    (0.95, 0.0),
    (0.80, 0.2),
    (0.60, 0.5),
    (0.40, 0.8),
)

QUANT_QUALITY: Dict[str, float] = {
    "Q2_K": 0.2,
    "Q2_K_S": 0.2,
    "Q3_K_S": 0.35,
    "Q3_K_M": 0.4,
    "Q3_K_L": 0.45,
    "IQ3_XS": 0.35,
    "IQ3_S": 0.35,
    "IQ3_M": 0.4,
    "IQ3_XXS": 0.3,
    "Q4_0": 0.55,
    "Q4_1": 0.6,
    "Q4_K_S": 0.65,
    "Q4_K_M": 0.7,
    "IQ4_XS": 0.6,
    "IQ4_NL": 0.65,
    "Q5_0": 0.75,
    "Q5_1": 0.78,
    "Q5_K_S": 0.8,
    "Q5_K_M": 0.85,
    "Q6_K": 0.9,
    "Q8_0": 0.95,
    "F16": 1.0,
    "FP16": 1.0,
}

# (age in days strictly below, score); older than the last breakpoint -> floor.
FRESHNESS_BREAKPOINTS: Tuple[Tuple[int, float], ...] = (
    (7, 1.0),
    (30, 0.9),
    (90, 0.7),
    (180, 0.5),
    (365, 0.3),
)
FRESHNESS_FLOOR = 0.1

POPULARITY_WEIGHTS = {"downloads": 0.7, "likes": 0.3}

CODE_TAGS = ("code", "code-generation", "coding")
CHAT_TAGS = ("chat", "conversational", "chatqa")
TEXT_GENERATION = "text-generation"
TASK_PREFERENCES = ("code", "chat", "general")

SCORE_DIGITS = 3
BREAKDOWN_DIGITS = 2
DEFAULT_TOP_K = 10


@dataclass(frozen=True)
class RankPreferences:
    available_ram_gb: Optional[float] = None
    task_preference: str = "code"
    top_k: Optional[int] = DEFAULT_TOP_K


@dataclass(frozen=True)
class ScoreBreakdown:
    size: float
    quant: float
    freshness: float
    popularity: float
    task: float
    chat: float


@dataclass(frozen=True)
class ScoredCandidate:
    model_id: str
    author: str
    score: float
    breakdown: ScoreBreakdown
    best_quant: str
    parameter_size: Optional[str]
    downloads: int
    likes: int
    last_modified: datetime


def estimate_ram_gb(parameter_size: Optional[str]) -> float:
    if not parameter_size:
        return DEFAULT_RAM_ESTIMATE_GB
    return PARAM_SIZE_GB.get(parameter_size.upper(), DEFAULT_RAM_ESTIMATE_GB)


def score_size_fit(parameter_size: Optional[str], available_ram_gb: Optional[float]) -> float:
    if not available_ram_gb:
        return 0.5
    ratio = estimate_ram_gb(parameter_size) / available_ram_gb
    for threshold, score in SIZE_FIT_THRESHOLDS:
        if ratio > threshold:
            return score
    return 1.0


def quant_quality(label: str) -> float:
    if label in QUANT_QUALITY:
        return QUANT_QUALITY[label]
    return quant_level(label) / MAX_QUANT_LEVEL


def score_best_quant(candidate: Candidate) -> Tuple[float, str]:
    """Return (quality score, label achieving it); ``(0, "NONE")`` when empty."""
    if not candidate.quantizations:
        return 0.0, "NONE"
    best_score = 0.0
    best_label = candidate.quantizations[0].label
    for quant in candidate.quantizations:
        quality = quant_quality(quant.label)
        if quality > best_score:
            best_score = quality
            best_label = quant.label
    return best_score, best_label


def score_freshness(last_modified: datetime, now: datetime) -> float:
    if last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)
    age_days = (now - last_modified).total_seconds() / 86400
    for limit, score in FRESHNESS_BREAKPOINTS:
        if age_days < limit:
            return score
    return FRESHNESS_FLOOR


def score_popularity(
    downloads: int, likes: int, max_downloads: int, max_likes: int
) -> float:
    downloads_norm = downloads / max(max_downloads, 1)
    likes_norm = likes / max(max_likes, 1)
    return (
        downloads_norm * POPULARITY_WEIGHTS["downloads"]
        + likes_norm * POPULARITY_WEIGHTS["likes"]
    )


def score_task(candidate: Candidate, preference: str) -> float:
    tags = [t.lower() for t in candidate.tags]
    pipeline = (candidate.pipeline_tag or "").lower()
    is_text_generation = TEXT_GENERATION in tags or pipeline == TEXT_GENERATION

    if preference == "code":
        if any(tag in tags or tag in pipeline for tag in CODE_TAGS):
            return 1.0
        return 0.6 if is_text_generation else 0.3

    if preference == "chat":
        if any(tag in tags or tag in pipeline for tag in CHAT_TAGS):
            return 1.0
        return 0.8 if candidate.has_chat_template else 0.3

    return 0.8 if is_text_generation else 0.5


def _now_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def score_candidate(
    candidate: Candidate,
    preferences: RankPreferences,
    max_downloads: int,
    max_likes: int,
    now: datetime,
) -> ScoredCandidate:
    size = score_size_fit(candidate.parameter_size, preferences.available_ram_gb)
    quant, best_quant = score_best_quant(candidate)
    freshness = score_freshness(candidate.last_modified, now)
    popularity = score_popularity(
        candidate.downloads, candidate.likes, max_downloads, max_likes
    )
    task = score_task(candidate, preferences.task_preference or "code")
    chat = 1.0 if candidate.has_chat_template else 0.0

    composite = (
        size * WEIGHTS["size"]
        + quant * WEIGHTS["quant"]
        + freshness * WEIGHTS["freshness"]
        + popularity * WEIGHTS["popularity"]
        + task * WEIGHTS["task"]
        + chat * WEIGHTS["chat"]
    )

    return ScoredCandidate(
        model_id=candidate.id,
        author=candidate.author,
        score=round(composite, SCORE_DIGITS),
        breakdown=ScoreBreakdown(
            size=round(size, BREAKDOWN_DIGITS),
            quant=round(quant, BREAKDOWN_DIGITS),
            freshness=round(freshness, BREAKDOWN_DIGITS),
            popularity=round(popularity, BREAKDOWN_DIGITS),
            task=round(task, BREAKDOWN_DIGITS),
            chat=round(chat, BREAKDOWN_DIGITS),
        ),
        best_quant=best_quant,
        parameter_size=candidate.parameter_size,
        downloads=candidate.downloads,
        likes=candidate.likes,
        last_modified=candidate.last_modified,
    )


def rank_candidates(
    candidates: Sequence[Candidate],
    preferences: Optional[RankPreferences] = None,
    now: Optional[datetime] = None,
) -> List[ScoredCandidate]:
    """Score and return the top-K candidates, best first.

    Equal scores keep their input order.
    """
    if not candidates:
        return []
    preferences = preferences or RankPreferences()
    reference = _now_utc(now)

    max_downloads = max(max(c.downloads for c in candidates), 1)
    max_likes = max(max(c.likes for c in candidates), 1)

    scored = [
        score_candidate(c, preferences, max_downloads, max_likes, reference)
        for c in candidates
    ]
    scored.sort(key=lambda s: s.score, reverse=True)

    top_k = preferences.top_k if preferences.top_k is not None else DEFAULT_TOP_K
    return scored[: max(top_k, 0)]


__all__ = [
    "RankPreferences",
    "ScoreBreakdown",
    "ScoredCandidate",
    "WEIGHTS",
    "rank_candidates",
    "score_candidate",
    "score_size_fit",
    "score_best_quant",
    "score_freshness",
    "score_popularity",
    "score_task",
    "estimate_ram_gb",
]
