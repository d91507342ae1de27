from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feeledger.api.v1.fees.router import router as fees_router
from feeledger.billing.coordinator import FeeCoordinator
from feeledger.billing.gateway import PaymentGateway
from feeledger.clients.database import DatabaseDataService
from feeledger.clients.remote import RemoteDataService
from feeledger.core.config import Settings, settings as default_settings
from feeledger.core.enums import DataBackend
from feeledger.core.logging_config import configure_logging


def build_data_service(settings: Settings) -> Any:
    """Adapter implementing the catalog, student directory and ledger for the configured backend."""
    backend = DataBackend(settings.data_backend.strip().lower())
    if backend == DataBackend.DATABASE:
        return DatabaseDataService.from_settings(settings)
    return RemoteDataService.from_settings(settings)


def create_app(settings: Optional[Settings] = None, data_service: Any = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)
    data_service = data_service or build_data_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        aclose = getattr(data_service, "aclose", None)
        if aclose is not None:
            await aclose()

    app = FastAPI(title="Fee Ledger", lifespan=lifespan)

    # CORS: allow the school dashboard frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    coordinator = FeeCoordinator.from_settings(settings, data_service, data_service, data_service)
    app.state.coordinator = coordinator
    app.state.gateway = PaymentGateway.from_settings(settings, data_service, data_service, coordinator)

    # Routers
    app.include_router(fees_router)

    return app


app = create_app()
