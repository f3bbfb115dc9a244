from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taquilla.core.config import settings
from taquilla.core.logger_config import setup_logging
from taquilla.api.errors import register_exception_handlers
from taquilla.api.v1.api import api_router
import taquilla.db.base  # noqa: F401  (registers every model on the metadata)

setup_logging()

app = FastAPI(title=settings.APP_NAME)

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = ["http://127.0.0.1:3000", "http://localhost:3000"]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok"}
