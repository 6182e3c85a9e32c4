from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from college_erp.api.v1.endpoints import auth, students, staff, fees
from college_erp.core.config import settings
from college_erp.core.exceptions import ERPError
from college_erp.db.supabase import test_connection

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting College ERP API...")
    if await test_connection():
        logger.info("✓ Supabase connection established")
    else:
        logger.error("✗ Supabase connection failed")

    yield

    # Shutdown
    logger.info("Shutting down College ERP API...")

# Initialize FastAPI app
app = FastAPI(
    title="College ERP API",
    description="Student, staff and fee administration for a college",
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error envelope: {"success": false, "message": ..., "code": ...}
@app.exception_handler(ERPError)
async def erp_error_handler(request: Request, exc: ERPError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": "HTTP_ERROR", "message": exc.detail},
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "errors": [
                {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
                for err in exc.errors()
            ]
        }
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "INTERNAL_ERROR", "message": "An error occurred"}
    )

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }

# Include API routers
app.include_router(auth.router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["Authentication"])
app.include_router(students.router, prefix=f"{settings.API_V1_PREFIX}/students", tags=["Students"])
app.include_router(staff.router, prefix=f"{settings.API_V1_PREFIX}/staff", tags=["Staff"])
app.include_router(fees.router, prefix=f"{settings.API_V1_PREFIX}/fees", tags=["Fees"])

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "College ERP API",
        "docs": "/api/docs",
        "version": settings.VERSION
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "college_erp.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development"
    )
