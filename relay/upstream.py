from typing import AsyncIterator, Optional
from urllib.parse import urlsplit

import anyio
import httpx

from .config import Settings
from .logger import logger
from .models import PROBE_HEADERS, ProbeResult


def is_allowed_url(url: str, settings: Settings) -> bool:
    """Check ``url`` against the domain allow-list.

    The default mode is a plain substring test, so ``https://evil.example/?x=terabox.com``
    passes. ``strict_host_check`` narrows it to the URL host or its subdomains.
    """
    if not settings.strict_host_check:
        return any(domain in url for domain in settings.allowed_domains)

    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    return any(host == d or host.endswith("." + d) for d in settings.allowed_domains)


def _raise_for_server_error(response: httpx.Response) -> None:
    # Anything below 500 counts as an answer, 4xx included
    if response.status_code >= 500:
        raise httpx.HTTPStatusError(
            f"Server error '{response.status_code} {response.reason_phrase}' for url '{response.url}'",
            request=response.request,
            response=response,
        )


def make_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    kwargs = {"follow_redirects": False, "timeout": settings.fetch_timeout}
    if transport is not None:
        kwargs["transport"] = transport
    elif settings.http2:
        kwargs["http2"] = True
    return httpx.AsyncClient(**kwargs)


async def probe(client: httpx.AsyncClient, url: str, settings: Settings) -> ProbeResult:
    """Issue the HEAD probe. Never raises for upstream failures."""
    try:
        r = await client.head(
            url,
            headers=settings.outbound_headers,
            timeout=settings.probe_timeout,
            follow_redirects=True,
        )
        _raise_for_server_error(r)
    except httpx.HTTPError as e:
        return ProbeResult.failed(e)

    headers = {name: r.headers[name] for name in PROBE_HEADERS if r.headers.get(name)}
    return ProbeResult(headers=headers, status_code=r.status_code)


async def open_stream(client: httpx.AsyncClient, url: str, settings: Settings) -> httpx.Response:
    """Send the GET and return once headers arrive; the body is left unread."""
    request = client.build_request("GET", url, headers=settings.outbound_headers, timeout=settings.fetch_timeout)
    response = await client.send(request, stream=True)
    try:
        _raise_for_server_error(response)
    except httpx.HTTPStatusError:
        await response.aclose()
        raise
    return response


async def close_upstream(client: httpx.AsyncClient, response: Optional[httpx.Response] = None) -> None:
    """Release the upstream response and its client. Safe to call more than once."""
    with anyio.CancelScope(shield=True):
        if response is not None:
            await response.aclose()
        await client.aclose()


async def pipe(client: httpx.AsyncClient, response: httpx.Response, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield the upstream body as it arrives, closing upstream on exit.

    Exit covers normal completion, upstream failure and cancellation when the
    client disconnects. A failure after the first chunk cannot change the status
    already sent, so it propagates and the connection is dropped.
    """
    sent = 0
    try:
        async for chunk in response.aiter_bytes(chunk_size):
            sent += len(chunk)
            yield chunk
    except httpx.HTTPError as e:
        logger.error(f"Upstream stream failed after {sent} bytes for {response.url}: {e}")
        raise
    except anyio.get_cancelled_exc_class():
        logger.info(f"Client went away after {sent} bytes, dropping {response.url}")
        raise
    finally:
        await close_upstream(client, response)
        logger.debug(f"Closed upstream stream for {response.url} ({sent} bytes)")
