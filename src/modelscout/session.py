"""Search-then-rank session state.

The caller owns a :class:`SearchSession`; each primary-catalog search replaces
its single candidate slot and ranking reads from it. Ranking an empty session
returns an empty report with a hint instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .extractor import Candidate
from .hub_client import HubClient, SearchQuery, SearchResult
from .ranking import RankPreferences, ScoredCandidate, rank_candidates

logger = logging.getLogger(__name__)

NO_CANDIDATES_HINT = "No models to rank. Run a search first."


@dataclass
class RankReport:
    ranked: List[ScoredCandidate] = field(default_factory=list)
    message: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.ranked


@dataclass
class SearchSession:
    candidates: List[Candidate] = field(default_factory=list)
    last_query: Optional[SearchQuery] = None

    def remember(self, candidates: List[Candidate], query: Optional[SearchQuery] = None) -> None:
        self.candidates = list(candidates)
        self.last_query = query

    async def search(self, client: HubClient, query: SearchQuery) -> SearchResult:
        result = await client.search_models(query)
        self.remember(result.models, query)
        return result

    def rank(
        self,
        preferences: Optional[RankPreferences] = None,
        now: Optional[datetime] = None,
    ) -> RankReport:
        if not self.candidates:
            return RankReport(ranked=[], message=NO_CANDIDATES_HINT)
        preferences = preferences or RankPreferences()
        ranked = rank_candidates(self.candidates, preferences, now=now)
        logger.info(
            "Ranked %d of %d candidates for task '%s'",
            len(ranked),
            len(self.candidates),
            preferences.task_preference,
        )
        return RankReport(
            ranked=ranked,
            message=f"Top {len(ranked)} models ranked for {preferences.task_preference}",
        )


__all__ = ["SearchSession", "RankReport", "NO_CANDIDATES_HINT"]
