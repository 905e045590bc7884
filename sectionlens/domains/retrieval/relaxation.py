"""
Relaxation Controller - Retry retrieval with progressively weaker criteria.

States:
    STRICT -> ROLE_RELAXED -> CONTEXT_RELAXED -> EMPTY

Each state has one entry method. A state whose filter was never set is
skipped without a retrieval attempt. Relaxations are cumulative: once the
role is dropped it stays dropped for the context-relaxed attempt.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .models import QueryOutcome, RelaxationStage, ResultRecord, SearchCriteria

logger = logging.getLogger(__name__)

__all__ = ["Attempt", "RelaxationController"]

Attempt = Callable[[SearchCriteria], Awaitable[list[ResultRecord]]]


@dataclass(frozen=True)
class _Step:
    """Outcome of one state; results is None when the state was skipped."""

    criteria: SearchCriteria
    next_stage: RelaxationStage
    results: list[ResultRecord] | None = None


class RelaxationController:
    """
    Finite-state machine over relaxation stages.

    Example:
        >>> controller = RelaxationController(attempt=service.attempt)
        >>> outcome = await controller.run(criteria)
        >>> outcome.stage
        <RelaxationStage.ROLE_RELAXED: 'role_relaxed'>
    """

    def __init__(self, attempt: Attempt) -> None:
        """
        Initialize controller.

        Args:
            attempt: One retrieve-and-reconcile pass for given criteria
        """
        self._attempt = attempt
        self._entries: dict[RelaxationStage, Callable[[SearchCriteria], Awaitable[_Step]]] = {
            RelaxationStage.STRICT: self._enter_strict,
            RelaxationStage.ROLE_RELAXED: self._enter_role_relaxed,
            RelaxationStage.CONTEXT_RELAXED: self._enter_context_relaxed,
        }

    async def run(self, criteria: SearchCriteria) -> QueryOutcome:
        stage = RelaxationStage.STRICT
        current = criteria
        tried: list[RelaxationStage] = []

        while stage is not RelaxationStage.EMPTY:
            step = await self._entries[stage](current)
            if step.results is not None:
                tried.append(stage)
                if step.results:
                    if stage is not RelaxationStage.STRICT:
                        logger.info(
                            "Relaxed query to %s: %d results", stage.value, len(step.results)
                        )
                    return QueryOutcome(results=step.results, stage=stage, stages_tried=tried)
            current = step.criteria
            stage = step.next_stage

        return self._enter_empty(tried)

    async def _enter_strict(self, criteria: SearchCriteria) -> _Step:
        results = await self._attempt(criteria)
        return _Step(criteria=criteria, next_stage=RelaxationStage.ROLE_RELAXED, results=results)

    async def _enter_role_relaxed(self, criteria: SearchCriteria) -> _Step:
        if not criteria.role:
            return _Step(criteria=criteria, next_stage=RelaxationStage.CONTEXT_RELAXED)
        logger.debug("No results with role=%s, dropping role filter", criteria.role)
        relaxed = criteria.without_role()
        results = await self._attempt(relaxed)
        return _Step(criteria=relaxed, next_stage=RelaxationStage.CONTEXT_RELAXED, results=results)

    async def _enter_context_relaxed(self, criteria: SearchCriteria) -> _Step:
        if not criteria.has_context_filter:
            return _Step(criteria=criteria, next_stage=RelaxationStage.EMPTY)
        logger.debug(
            "No results with locale=%s country=%s page_id=%s, dropping context filters",
            criteria.locale,
            criteria.country,
            criteria.page_id,
        )
        relaxed = criteria.without_context()
        results = await self._attempt(relaxed)
        return _Step(criteria=relaxed, next_stage=RelaxationStage.EMPTY, results=results)

    def _enter_empty(self, tried: list[RelaxationStage]) -> QueryOutcome:
        logger.info("No results after stages: %s", ", ".join(s.value for s in tried))
        return QueryOutcome(
            results=[],
            stage=RelaxationStage.EMPTY,
            stages_tried=[*tried, RelaxationStage.EMPTY],
        )
