from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from filevault.config import settings
from filevault.middleware import add_error_handling_middleware

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper()))
logger = logging.getLogger(__name__)

# Create FastAPI app instance
app = FastAPI(
    title=settings.app_name,
    description="FastAPI server for chunked file uploads",
    version=settings.app_version,
    debug=settings.debug
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add error handling middleware
add_error_handling_middleware(app)

# Include routers
from filevault.routes import files, health, info, uploads
from filevault.services.upload_coordinator import get_coordinator, init_coordinator, shutdown_coordinator
from filevault.services.session_sweeper import init_session_sweeper, shutdown_session_sweeper

app.include_router(health.router)
app.include_router(info.router)
app.include_router(uploads.router, prefix=settings.api_prefix)
app.include_router(files.router, prefix=settings.api_prefix)

# Upload pipeline lifecycle
@app.on_event("startup")
async def _startup():
    init_coordinator(settings)
    await init_session_sweeper(
        get_coordinator,
        interval_seconds=settings.sweep_interval_seconds,
        max_age_seconds=settings.session_max_age_seconds,
    )


@app.on_event("shutdown")
async def _shutdown():
    await shutdown_session_sweeper()
    shutdown_coordinator()

@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": settings.app_name, "version": settings.app_version}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
