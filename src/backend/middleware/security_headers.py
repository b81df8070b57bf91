# src/backend/middleware/security_headers.py
import secrets

from fastapi import Request

from src.backend.utils.media import MEDIA_URL


async def security_headers_middleware(request: Request, call_next):
    # the confirmation pages are the only HTML we serve; they use inline styles only
    nonce = secrets.token_urlsafe(16)
    request.state.csp_nonce = nonce

    resp = await call_next(request)

    resp.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        f"script-src 'self' 'nonce-{nonce}'; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: blob:; "
        "frame-ancestors 'none'; "
        "base-uri 'self'; "
        "form-action 'self'; "
        "object-src 'none'"
    )
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    resp.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    # uploaded PDFs and images are opened in an iframe viewer by the dashboard
    if not request.url.path.startswith(MEDIA_URL):
        resp.headers.setdefault("X-Frame-Options", "DENY")
    return resp
