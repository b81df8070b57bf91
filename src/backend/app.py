# src/backend/app.py
import logging
import mimetypes
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi import HTTPException as FastAPIHTTPException
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.backend.config import settings
from src.backend.middleware.security_headers import security_headers_middleware
from src.backend.utils.database import create_all_tables
from src.backend.utils.error_handler import custom_exception_handler
from src.backend.utils.exceptions import AppError
from src.backend.utils.logging_config import configure_logging
from src.backend.utils.media import MEDIA_URL, get_media_root

from src.backend.routes.auth_api import auth_api, profile_api
from src.backend.routes import users_api
from src.backend.routes import departments_api
from src.backend.routes.vendors_api import router as vendors_router
from src.backend.routes.couriers_api import router as couriers_router
from src.backend.routes.received_couriers_api import router as received_couriers_router
from src.backend.routes.branches_api import router as branches_router
from src.backend.routes.authority_templates_api import router as templates_router
from src.backend.routes.authority_letter_fields_api import router as letter_fields_router
from src.backend.routes.authority_letter_api import router as letter_router
from src.backend.routes.settings_api import router as settings_router
from src.backend.routes.audit_logs_api import router as audit_logs_router
from src.backend.routes.stats_api import router as stats_router

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────
# Uploaded POD copies and Word templates need correct Content-Type
# ─────────────────────────────────────────────────────────
mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type(
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document", ".docx"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.AUTO_CREATE_TABLES:
        await create_all_tables()
    logger.info("%s started (timezone %s)", settings.APP_NAME, settings.TIMEZONE)
    yield


app = FastAPI(title=settings.APP_NAME, version="1.0", lifespan=lifespan)

# ----------------------------------------------------------
# STATIC FILES (uploads)
# ----------------------------------------------------------
app.mount(MEDIA_URL, StaticFiles(directory=get_media_root(), check_dir=False), name="uploads")

# ----------------------------------------------------------
# CORS & SECURITY HEADERS
# ----------------------------------------------------------
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Template-Warnings", "X-Bulk-Generated", "X-Bulk-Failed"],
    )

app.middleware("http")(security_headers_middleware)

# ----------------------------------------------------------
# CUSTOM ERROR HANDLERS
# ----------------------------------------------------------
# 1) Our own structured errors (conflicts, stale versions, bulk limits)
app.add_exception_handler(AppError, custom_exception_handler)
app.add_exception_handler(StaleDataError, custom_exception_handler)

# 2) Starlette HTTPException (routing 404 etc.)
app.add_exception_handler(StarletteHTTPException, custom_exception_handler)

# 3) FastAPI HTTPException (ones we raise ourselves)
app.add_exception_handler(FastAPIHTTPException, custom_exception_handler)

# 4) Validation errors
app.add_exception_handler(RequestValidationError, custom_exception_handler)

# 5) Catch-all
app.add_exception_handler(Exception, custom_exception_handler)

# ----------------------------------------------------------
# ROUTERS
# ----------------------------------------------------------
app.include_router(auth_api)
app.include_router(profile_api)
app.include_router(users_api.router)
app.include_router(users_api.admin_router)
app.include_router(departments_api.router)
app.include_router(departments_api.fields_router)
app.include_router(departments_api.options_router)
app.include_router(vendors_router)
app.include_router(couriers_router)
app.include_router(received_couriers_router)
app.include_router(branches_router)
# same handlers under both the current and the legacy path
app.include_router(templates_router, prefix="/api/authority-templates")
app.include_router(templates_router, prefix="/api/authority-letter-templates")
app.include_router(letter_fields_router)
app.include_router(letter_router)
app.include_router(settings_router)
app.include_router(audit_logs_router)
app.include_router(stats_router)


@app.get("/api/health", include_in_schema=False)
async def health():
    return {"status": "ok", "app": settings.APP_NAME}
