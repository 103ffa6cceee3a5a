"""
Quote Workflow Platform API - Main Application.

FastAPI application with CORS enabled for the agent and customer portals.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from config.settings import configure_logging

configure_logging()

# Create FastAPI application
app = FastAPI(
    title="Quote Workflow Platform API",
    description="REST API for insurance quotes, credit-control approvals, agent pool assignment and renewals",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for demo
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "quote-workflow-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Quote Workflow Platform API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import approvals, assignments, auth, quotes, renewals

app.include_router(quotes.router, prefix="/api/v1", tags=["Quotes"])
app.include_router(approvals.router, prefix="/api/v1", tags=["Approvals"])
app.include_router(assignments.router, prefix="/api/v1", tags=["Assignments"])
app.include_router(renewals.router, prefix="/api/v1", tags=["Renewals"])
app.include_router(auth.router, prefix="/api/v1", tags=["Auth"])
