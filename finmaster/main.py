from __future__ import annotations

from fastapi import FastAPI

from finmaster.api.routes import API_VERSION, router
from finmaster.config.settings import get_settings
from finmaster.integrations.yahoo_chart import YahooChartClient
from finmaster.services.analysis import AnalysisService


def _bind_runtime_clients(app: FastAPI) -> None:
    settings = app.state.get_settings()
    app.state.yahoo_client = YahooChartClient(
        base_url=settings.FINMASTER_UPSTREAM_BASE_URL,
        timeout=settings.FINMASTER_UPSTREAM_TIMEOUT_SEC,
    )
    app.state.analysis_service = AnalysisService(max_workers=settings.FINMASTER_MAX_WORKERS)


app = FastAPI(title="FinMaster Quote Gateway", version=API_VERSION)
app.include_router(router, prefix="/api")

# NOTE: settings are lazy so tests can patch the environment before binding clients.
app.state.get_settings = get_settings
_bind_runtime_clients(app)
