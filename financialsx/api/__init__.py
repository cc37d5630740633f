"""
FinancialsX API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .auth import router as auth_router
from .admin import router as admin_router
from .companies import router as companies_router
from .dbf import router as dbf_router
from .vendors import router as vendors_router
from .wells import router as wells_router
from .banking import router as banking_router
from .gl import router as gl_router
from .audits import router as audits_router
from .operations import router as operations_router
from .reports import router as reports_router
from .vfp import router as vfp_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="FinancialsX API",
        description="Accounting, banking and audit services over Visual FoxPro DBF data",
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

    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(companies_router, prefix="/companies", tags=["Companies"])
    app.include_router(dbf_router, prefix="/dbf", tags=["DBF"])
    app.include_router(vendors_router, prefix="/vendors", tags=["Vendors"])
    app.include_router(wells_router, prefix="/wells", tags=["Wells"])
    app.include_router(banking_router, prefix="/banking", tags=["Banking"])
    app.include_router(gl_router, prefix="/gl", tags=["General Ledger"])
    app.include_router(audits_router, prefix="/audits", tags=["Audits"])
    app.include_router(operations_router, prefix="/operations", tags=["Operations"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])
    app.include_router(vfp_router, prefix="/vfp", tags=["VFP"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "financialsx_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "FinancialsX API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "companies": "/companies",
                "dbf": "/dbf",
                "vendors": "/vendors",
                "wells": "/wells",
                "banking": "/banking",
                "gl": "/gl",
                "audits": "/audits",
                "operations": "/operations",
                "reports": "/reports",
                "vfp": "/vfp",
                "admin": "/admin",
            }
        }

    return app


app = create_app()
