"""
Content Query Service - Entry point of the retrieval-and-reconciliation engine.

Pipeline:
    request -> (optional interpretation) -> CriteriaBuilder -> RelaxationController
            -> [RetrievalOrchestrator -> ResultReconciler] per attempt -> results

Usage:
    service = ContentQueryService(similarity=vector_search, metadata=repository)
    results = await service.query(QueryRequest(message="headline for hero-section"))
"""

from __future__ import annotations

import logging
import time

from .contracts import MetadataSearch, QueryInterpreter, SimilaritySearch
from .criteria import CriteriaBuilder
from .models import QueryHint, QueryOutcome, QueryRequest, ResultRecord, SearchCriteria
from .orchestrator import RetrievalOrchestrator
from .reconciler import ResultReconciler
from .relaxation import RelaxationController

logger = logging.getLogger(__name__)

__all__ = ["ContentQueryService"]


class ContentQueryService:
    """
    Answer a query request with a deduplicated, numbered result list.

    Interpretation is advisory: a missing interpreter, a None hint or an
    interpreter failure all fall back to pattern extraction. Only a blank
    message is rejected (InvalidRequestError).
    """

    def __init__(
        self,
        similarity: SimilaritySearch | None,
        metadata: MetadataSearch,
        interpreter: QueryInterpreter | None = None,
        builder: CriteriaBuilder | None = None,
        orchestrator: RetrievalOrchestrator | None = None,
        reconciler: ResultReconciler | None = None,
    ) -> None:
        self._interpreter = interpreter
        self._builder = builder or CriteriaBuilder()
        self._orchestrator = orchestrator or RetrievalOrchestrator(similarity, metadata)
        self._reconciler = reconciler or ResultReconciler()
        self._relaxation = RelaxationController(attempt=self.attempt)

    async def query(self, request: QueryRequest) -> list[ResultRecord]:
        """Ordered results for the request (empty when nothing matches)."""
        outcome = await self.run(request)
        return outcome.results

    async def run(self, request: QueryRequest) -> QueryOutcome:
        """Results plus the relaxation stage that produced them."""
        start = time.perf_counter()
        message = self._builder.validate(request)

        hint = await self._interpret(message, request)
        criteria = self._builder.build(request, hint)
        outcome = await self._relaxation.run(criteria)

        logger.info(
            "Query '%s' -> %d results (stage=%s, %.1fms)",
            message[:50],
            len(outcome.results),
            outcome.stage.value,
            (time.perf_counter() - start) * 1000,
        )
        return outcome

    async def attempt(self, criteria: SearchCriteria) -> list[ResultRecord]:
        """One retrieve-and-reconcile pass."""
        batch = await self._orchestrator.retrieve(criteria)
        return self._reconciler.reconcile(batch, criteria)

    async def _interpret(self, message: str, request: QueryRequest) -> QueryHint | None:
        if self._interpreter is None:
            return None
        try:
            return await self._interpreter.interpret(message, request.context or None)
        except Exception as e:
            logger.warning("Query interpretation unavailable, using message patterns: %s", e)
            return None
