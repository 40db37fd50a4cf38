from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from horario.api.routes import allocations, proposals, settings as settings_routes
from horario.api.store import InMemoryStore
from horario.core.config import get_settings
from horario.core.logging import configure_logging
from horario.core.exceptions import AppError


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


def create_app(store: InMemoryStore | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title=f"{settings.project_name} reference authority")
    app.state.store = store or InMemoryStore(allow_sub_slot_ranges=settings.allow_sub_slot_ranges)
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(allocations.router, prefix="/alocacoes-horarios", tags=["allocations"])
    app.include_router(proposals.router, prefix="/propostas-horario", tags=["proposals"])
    app.include_router(settings_routes.router, tags=["settings"])
    return app
