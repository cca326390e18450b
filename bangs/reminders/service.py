from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from .api import router as reminders_router
from bangs.core.config import settings as app_settings
from .config import settings


def create_app() -> FastAPI:
    # Interactive docs are internal-only
    docs_url = None if app_settings.is_production else "/docs"
    app = FastAPI(title="Reminder Sweep Service", version=app_settings.VERSION, docs_url=docs_url)
    app.include_router(reminders_router, prefix="/api/v1/reminders", tags=["reminders"])
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()
