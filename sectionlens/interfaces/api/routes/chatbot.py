"""
Chatbot Routes - Content query endpoint.

The response body is the ordered result list; the relaxation stage that
produced it and the result count are reported in the X-Relaxation-Stage
and X-Result-Count headers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from sectionlens.domains.retrieval import ContentQueryService, QueryRequest, ResultRecord
from sectionlens.interfaces.api.deps import get_query_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/query", response_model=list[ResultRecord])
async def query(
    request: QueryRequest,
    response: Response,
    service: ContentQueryService = Depends(get_query_service),
) -> list[ResultRecord]:
    """
    Find content sections matching a free-form message.

    - **message**: Free-form request (required, non-blank)
    - **sectionKey**, **original_field_name**, **locale**, **country**, **pageId**: Explicit filters
    - **tags**, **keywords**, **context**: Additional filters
    - **limit**: Maximum results (default 15, capped at 200)
    """
    outcome = await service.run(request)
    response.headers["X-Relaxation-Stage"] = outcome.stage.value
    response.headers["X-Result-Count"] = str(len(outcome.results))
    return outcome.results
