"""Serialised recommendation requests with stale-result suppression."""

from __future__ import annotations

import logging
import threading

from craft_advisor.models.state import CraftState
from craft_advisor.optimizer.search import Advisor, Recommendation
from craft_advisor.optimizer.specs import AdvisorConfig

logger = logging.getLogger(__name__)


class RecommendationSession:
    """Runs one search at a time for a single craft.

    Every submission takes a generation number. A request whose
    generation is no longer the newest when it would start, or when it
    finishes, returns None instead of a result.
    """

    def __init__(self, advisor: Advisor, config: AdvisorConfig | None = None) -> None:
        self.advisor = advisor
        self.config = config or AdvisorConfig()
        self.latest: Recommendation | None = None
        self._search_lock = threading.Lock()
        self._generation_lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._generation_lock:
            return self._generation

    def _next_generation(self) -> int:
        with self._generation_lock:
            self._generation += 1
            return self._generation

    def submit(self, state: CraftState, config: AdvisorConfig | None = None) -> Recommendation | None:
        ticket = self._next_generation()
        with self._search_lock:
            if ticket != self.generation:
                logger.debug("Request %d superseded before starting", ticket)
                return None
            result = self.advisor.recommend(state, config or self.config)
            if ticket != self.generation:
                logger.debug("Discarding stale result of request %d", ticket)
                return None
            self.latest = result
            return result
