from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, get_settings
from .errors import MethodNotAllowed, RelayError, ValidationError, classify_upstream_error
from .logger import configure_logging, logger
from .models import ErrorResponse
from .upstream import close_upstream, is_allowed_url, make_client, open_stream, pipe, probe


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().log_level)
    yield


app = FastAPI(title="TeraBox Relay", version=__version__, lifespan=lifespan)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 405, 500, 504)}


class UpstreamStreamingResponse(StreamingResponse):
    """Streaming response that releases the upstream even if the body never starts."""

    def __init__(self, client: httpx.AsyncClient, upstream: httpx.Response, chunk_size: int, **kwargs):
        super().__init__(pipe(client, upstream, chunk_size), **kwargs)
        self.client = client
        self.upstream = upstream

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            await close_upstream(self.client, self.upstream)


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Upstream transport override; ``None`` means a real network transport."""
    return None


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def router_error_handler(request: Request, exc: StarletteHTTPException):
    # Methods outside the route's list are rejected by the router itself
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content=MethodNotAllowed().to_payload(), headers=exc.headers)
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Runs outside the middleware stack, so CORS headers are added here
    logger.exception("Unhandled server error")
    error = classify_upstream_error(exc)
    return JSONResponse(status_code=error.status_code, content=error.to_payload(), headers=CORS_HEADERS)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.api_route(
    "/",
    methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
    responses=ERROR_RESPONSES,
)
async def relay_endpoint(
    request: Request,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    if request.method == "OPTIONS":
        return Response(status_code=200)
    if request.method != "GET":
        raise MethodNotAllowed()

    url = request.query_params.get("url")
    if not url:
        raise ValidationError(error="URL parameter is required")
    if not is_allowed_url(url, settings):
        raise ValidationError(error="Invalid URL domain")

    logger.info(f"Proxying request to: {url}")
    headers = {}
    client = make_client(settings, transport)
    try:
        if settings.probe_enabled:
            result = await probe(client, url, settings)
            if result.ok:
                headers.update(result.headers)
            else:
                logger.warning(f"Head request failed, continuing with GET: {result.error!r}")

        upstream = await open_stream(client, url, settings)
    except Exception as e:
        await close_upstream(client)
        error = classify_upstream_error(e)
        logger.error(f"Proxy error for {url}: {e!r} -> {error.status_code}")
        raise error from e
    except BaseException:
        # Cancelled while waiting on the upstream
        await close_upstream(client)
        raise

    location = upstream.headers.get("location")
    if 300 <= upstream.status_code < 400 and location:
        await close_upstream(client, upstream)
        logger.info(f"Upstream redirected {url} -> {location}")
        return RedirectResponse(location, status_code=302)

    for name in ("content-type", "content-disposition"):
        if name not in headers and upstream.headers.get(name):
            headers[name] = upstream.headers[name]
    # The relayed body is decoded, so an encoded length no longer applies
    if upstream.headers.get("content-encoding", "identity") != "identity":
        headers.pop("content-length", None)

    # 2xx and 4xx bodies alike are relayed under a 200
    return UpstreamStreamingResponse(client, upstream, settings.chunk_size, status_code=200, headers=headers)
