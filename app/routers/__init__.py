"""API routers."""

from app.routers.bulk_imports import router as bulk_imports_router
from app.routers.forms import router as forms_router
from app.routers.forms_public import router as forms_public_router
from app.routers.responses import router as responses_router
from app.routers.sources import public_router as sources_public_router
from app.routers.sources import router as sources_router

__all__ = [
    "bulk_imports_router",
    "forms_router",
    "forms_public_router",
    "responses_router",
    "sources_router",
    "sources_public_router",
]
