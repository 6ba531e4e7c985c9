"""
Lending API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .periodicities import router as periodicities_router
from .simulations import router as simulations_router
from .loans import router as loans_router
from .cashflow import router as cashflow_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Lending Back Office API",
        description="Loan scheduling, amortization and creditor cash flow",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(periodicities_router, prefix="/periodicities", tags=["Periodicities"])
    app.include_router(simulations_router, prefix="/simulations", tags=["Simulations"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(cashflow_router, prefix="/cash-flow", tags=["Cash Flow"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "lending_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Lending Back Office API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "periodicities": "/periodicities",
                "simulations": "/simulations",
                "loans": "/loans",
                "cash-flow": "/cash-flow/{creditor_id}",
            }
        }

    return app


app = create_app()
