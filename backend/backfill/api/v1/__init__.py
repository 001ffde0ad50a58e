# API v1 package
from backfill.api.v1.imports import router as imports_router
from backfill.api.v1.metrics import router as metrics_router

__all__ = [
    "imports_router",
    "metrics_router",
]
