from typing import Dict

from fastapi import Request

from bytestore.config import settings

# applied to every response of the JSON APIs
API_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


def security_headers_for(env: str) -> Dict[str, str]:
    headers = dict(API_SECURITY_HEADERS)
    if env.lower() != "development":
        headers["Strict-Transport-Security"] = HSTS_VALUE
    return headers


def add_security_headers(app, env: str = None):
    headers = security_headers_for(env or settings.ENV)

    @app.middleware("http")
    async def security_headers_mw(request: Request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response
