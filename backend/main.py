import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from db.database import engine, Base
from api.profile import router as profile_router
from api.plans import router as plans_router
from api.google import router as google_router
from api.ai import router as ai_router
from api.signals import router as signals_router
from api.rewards import router as rewards_router
from api.insights import router as insights_router
from api.integrations import router as integrations_router
from api.account import router as account_router

logger = logging.getLogger(__name__)

settings.validate_security_configuration()

# Create all tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.SECURITY_HEADERS_ENABLED:
        return response
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    issues = [
        {"path": list(error.get("loc", ())), "message": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"message": "Validation failed", "issues": jsonable_encoder(issues)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": str(exc) or "Internal server error"})


# Routers
app.include_router(profile_router, prefix="/v1")
app.include_router(plans_router, prefix="/v1")
app.include_router(google_router, prefix="/v1")
app.include_router(ai_router, prefix="/v1")
app.include_router(signals_router, prefix="/v1")
app.include_router(rewards_router, prefix="/v1")
app.include_router(insights_router, prefix="/v1")
app.include_router(integrations_router, prefix="/v1")
app.include_router(account_router, prefix="/v1")


@app.get("/v1/health")
def health_check():
    return {"ok": True}
