"""
Retrieval Domain - Dual-source retrieval and reconciliation.

This domain handles:
- Criteria construction from request, hints and message text
- Nested context merging with soft (inferred) values
- Concurrent semantic + metadata retrieval with section discovery
- Cross-source deduplication and cf1..cfN numbering
- Progressive constraint relaxation
- Refinement chip suggestions
"""

from .context import ContextMerger, MergedContext, deep_get, deep_merge
from .contracts import MetadataSearch, QueryInterpreter, SimilaritySearch
from .criteria import CriteriaBuilder
from .models import (
    ContentRecord,
    QueryHint,
    QueryOutcome,
    QueryRequest,
    RefinementChip,
    RelaxationStage,
    ResultRecord,
    ResultSource,
    RetrievalBatch,
    ScoredRecord,
    SearchCriteria,
    SemanticHit,
)
from .orchestrator import RetrievalOrchestrator, expand_section_keys
from .reconciler import DedupKey, ResultReconciler, content_hash
from .refinement import RefinementService
from .relaxation import RelaxationController
from .service import ContentQueryService

__all__ = [
    # Contracts
    "SimilaritySearch",
    "MetadataSearch",
    "QueryInterpreter",
    # Models
    "QueryRequest",
    "QueryHint",
    "SearchCriteria",
    "ContentRecord",
    "ScoredRecord",
    "RetrievalBatch",
    "ResultRecord",
    "ResultSource",
    "RelaxationStage",
    "QueryOutcome",
    "SemanticHit",
    "RefinementChip",
    # Components
    "CriteriaBuilder",
    "ContextMerger",
    "MergedContext",
    "deep_get",
    "deep_merge",
    "RetrievalOrchestrator",
    "expand_section_keys",
    "ResultReconciler",
    "DedupKey",
    "content_hash",
    "RelaxationController",
    "ContentQueryService",
    "RefinementService",
]
