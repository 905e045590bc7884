"""
Health Routes - System health and status endpoints.
"""

from typing import Any

from fastapi import APIRouter

from sectionlens import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": "sectionlens"}


@router.get("/api")
async def api_info() -> dict[str, Any]:
    """API info endpoint."""
    return {
        "name": "SectionLens API",
        "version": __version__,
        "description": "Dual-source retrieval over cleansed content sections",
        "docs": "/docs",
    }
