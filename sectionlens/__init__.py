"""
SectionLens - Locale-aware retrieval over cleansed content sections.

Example:
    >>> from sectionlens.domains.retrieval import ContentQueryService, QueryRequest
    >>> service = ContentQueryService(similarity=vector_search, metadata=repository)
    >>> results = await service.query(QueryRequest(message="headline for accordion-section for Korea"))
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
