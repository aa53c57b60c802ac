from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from api.schedule import router as schedule_router
from api.healthcheck import router as healthcheck_router
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.utils import get_openapi
from dotenv import load_dotenv
from utils.logger import logger
import os
import secrets

load_dotenv()
# env
API_KEY = os.getenv("API_KEY")
CORS_ALLOW_ORIGINS = [o for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if o]
ALLOWED_HOSTS = [h for h in os.getenv("ALLOWED_HOSTS", "").split(",") if h] or ["*"]
MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", "0"))  # 0 = no limit

HEALTH_PATH = "/api/health/check"
# paths served without an API key
PUBLIC_PATHS = {"/openapi.json", "/redoc", "/docs", HEALTH_PATH}
PUBLIC_PREFIXES = ("/docs/", HEALTH_PATH)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"🚀 Guard Roster API starting (hosts: {ALLOWED_HOSTS}, "
        f"API key {'set' if API_KEY else 'not set'}, body limit {MAX_BODY_BYTES or 'none'})"
    )
    yield
    logger.info("👋 Guard Roster API stopped")


# app
app = FastAPI(title="Guard Roster API", lifespan=lifespan)

# middlewares
if os.getenv("ENABLE_CORS") == "true":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)


# roster requests carry whole personnel lists, so the size guard runs before parsing
@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    length = request.headers.get("content-length")
    if MAX_BODY_BYTES > 0 and length and length.isdigit() and int(length) > MAX_BODY_BYTES:
        logger.warning(f"⚠️ Rejected {request.url.path}: body of {length} bytes")
        return JSONResponse(status_code=413, content={"detail": "Payload too large"})
    return await call_next(request)


@app.middleware("http")
async def api_key_guard(request: Request, call_next):
    path = request.url.path
    if request.method == "OPTIONS" or path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return await call_next(request)

    if not API_KEY:
        logger.warning("API_KEY not set; API key auth is DISABLED (dev mode).")
        return await call_next(request)

    client_key = request.headers.get("x-api-key")
    if not client_key or not secrets.compare_digest(str(client_key), str(API_KEY)):
        return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    return await call_next(request)


def custom_openapi():
    """OpenAPI schema with the x-api-key scheme on every route except the health check."""
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        description="Guard post roster generation",
        routes=app.routes,
    )
    schema.setdefault("components", {}).setdefault("securitySchemes", {})["ApiKeyAuth"] = {
        "type": "apiKey",
        "in": "header",
        "name": "x-api-key",
        "description": "Enter your API key",
    }
    for path, methods in schema.get("paths", {}).items():
        for op in methods.values():
            op["security"] = [] if path == HEALTH_PATH else [{"ApiKeyAuth": []}]

    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

# Register routers
app.include_router(schedule_router, prefix="/api")
app.include_router(healthcheck_router, prefix="/api")
