"""FastAPI application."""

from fastapi import FastAPI

from backend.quoting.api.routes.health import router as health_router
from backend.quoting.api.routes.metrics import router as metrics_router
from backend.quoting.api.routes.sessions import router as sessions_router

app = FastAPI(title="Itinerary Quoting API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(sessions_router, tags=["sessions"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Itinerary Quoting API", "version": "0.1.0"}
