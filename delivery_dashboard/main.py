import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from delivery_dashboard.core.config import settings
from delivery_dashboard.core.errors import DashboardError, FetchFailed, InvalidTransition, NotFound, TransitionFailed, Unauthorized
from delivery_dashboard.core.logging import configure_logging
from delivery_dashboard.infrastructure.query_cache import OrderQueryCache
from delivery_dashboard.infrastructure.repositories.order_store import HttpOrderStore
from delivery_dashboard.interfaces import admin_api
from delivery_dashboard.interfaces.IOrderStore import IOrderStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    InvalidTransition: 409,
    Unauthorized: 401,
    NotFound: 404,
    FetchFailed: 502,
    TransitionFailed: 502,
}


async def dashboard_error_handler(request: Request, exc: DashboardError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(status_code=status_code, content={"success": False, **exc.to_dict()})


def create_app(store: Optional[IOrderStore] = None) -> FastAPI:
    """Composition root. One app process is one dashboard session with one cache."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        order_store = store or HttpOrderStore()
        app.state.store = order_store
        app.state.cache = OrderQueryCache(order_store)
        logger.info(f"✅ {settings.PROJECT_NAME} ready, backing store at {settings.BACKEND_API_URL}")
        try:
            yield
        finally:
            if isinstance(order_store, HttpOrderStore):
                await order_store.aclose()

    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.include_router(admin_api.router)

    @app.get("/")
    def health_check():
        status = "active" if hasattr(app.state, "cache") else "starting"
        return {"status": status, "system": settings.PROJECT_NAME}

    return app


app = create_app()
