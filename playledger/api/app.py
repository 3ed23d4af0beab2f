"""FastAPI app, background loops, and route registration."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(name)s: %(message)s",
)

from playledger.api.errors import register_exception_handlers
from playledger.api.state import AppState, get_state
from playledger.config import ensure_data_dir

# Import routes after state to avoid circular imports
from playledger.api.routes import auth, export, report, update

__all__ = ["app", "AppState", "get_state"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_data_dir()
    state = get_state()
    state.start_loops()

    yield

    logging.getLogger(__name__).info("Shutting down, exporting snapshots")
    state.shutdown()


app = FastAPI(
    title="playledger API",
    description="Spotify listening history: updates, snapshots and reports",
    lifespan=lifespan,
)
register_exception_handlers(app)

app.include_router(update.router, prefix="/api/update", tags=["update"])
app.include_router(export.router, prefix="/api/export", tags=["export"])
app.include_router(report.router, prefix="/api/report", tags=["report"])
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(auth.callback_router, tags=["auth"])


@app.get("/-/ready")
def ready():
    return "ok"
