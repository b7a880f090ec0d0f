"""FastAPI application entry point."""
import uvicorn
from fastapi import FastAPI

from app.config import get_settings
from app.logging_config import configure_logging
from app.routers import alerts, health, recommendations


configure_logging()

app = FastAPI(title="Interval Coach API")


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


# Include routers
app.include_router(health.router)
app.include_router(recommendations.router)
app.include_router(alerts.router)


def serve() -> None:
    """Run the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, log_config=None)


if __name__ == "__main__":
    serve()
