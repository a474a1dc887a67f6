"""
app/api/routers package marker.
"""

from app.api.routers.quality_audit import router as quality_audit_router

__all__ = [
    "quality_audit_router",
]
