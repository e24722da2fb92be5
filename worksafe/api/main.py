import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from worksafe import __version__
from worksafe.common.logger import setup_logger
from worksafe.core.config import get_settings
from worksafe.core.approval.errors import WorkflowError
from worksafe.api.routers import permits, approvals, extensions, health

settings = get_settings()
setup_logger("worksafe", settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Permit-to-work approval workflow",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(permits.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(extensions.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
