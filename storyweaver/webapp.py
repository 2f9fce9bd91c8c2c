from __future__ import annotations

import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .api import profiles, stories, reader, settings

# Security headers middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        # SECURITY: Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # SECURITY: Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        # SECURITY: Enforce HTTPS in production (max-age=1 year)
        if os.environ.get("ENVIRONMENT") == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# Create FastAPI app
app = FastAPI(
    title="StoryWeaver",
    description="Choose-your-own-adventure stories for young readers",
    version="1.0.0"
)

# SECURITY: Configure CORS with environment-based origins
# Format: comma-separated list of allowed origins
allowed_origins_str = os.environ.get(
    "ALLOWED_ORIGINS",
    "http://localhost:8000,http://127.0.0.1:8000,http://localhost:5173,http://127.0.0.1:5173"
)
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=600,
)

app.add_middleware(SecurityHeadersMiddleware)

# Include API routers
app.include_router(profiles.router)
app.include_router(stories.router)
app.include_router(reader.router)
app.include_router(settings.router)


@app.get("/")
async def index():
    return {"message": "StoryWeaver API", "docs": "/docs"}


@app.on_event("startup")
async def validate_configuration():
    """Validate configuration on startup."""
    import logging
    from .settings import ensure_provider_api_keys, get_api_key_for_provider, load_user_settings
    from .storage import data_dir

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    user_settings = load_user_settings()
    ensure_provider_api_keys(user_settings)

    # Warn about missing API keys
    warnings = []
    if not get_api_key_for_provider(user_settings.text_provider, user_settings):
        warnings.append(f"{user_settings.text_provider} API key not configured (story generation will fail)")
    if not get_api_key_for_provider("elevenlabs", user_settings):
        warnings.append("ElevenLabs API key not configured (read-aloud will fail)")

    if warnings:
        for warning in warnings:
            logging.warning(f"CONFIG: {warning}")
        logging.info("Some API keys are missing. Configure them via /api/settings or environment variables.")

    # Check writable data directory
    directory = data_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        test_file = directory / ".write_test"
        test_file.write_text("test")
        test_file.unlink()
        logging.info(f"Data directory is writable: {directory}")
    except OSError as e:
        logging.error(f"Data directory not writable: {e}")
        raise RuntimeError(f"Cannot write to data directory: {e}")

    logging.info("Configuration validation complete")
    logging.info(f"Allowed CORS origins: {', '.join(allowed_origins)}")


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "service": "StoryWeaver"}
