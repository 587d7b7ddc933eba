from fastapi import FastAPI

from governance import __version__
from governance.core.config import get_settings
from governance.core.logger import configure_logging
from governance.api.routers import approvals

settings = get_settings()

configure_logging(settings)

app = FastAPI(
    title=settings.app_name,
    description="Multi-step approval chains for governed artifacts",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Include routers
app.include_router(approvals.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}
