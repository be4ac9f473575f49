"""Shared HTTP client construction."""

from __future__ import annotations

import httpx

from .. import __version__
from ..config import Context

USER_AGENT = f"stencil/{__version__}"


def build_client(
    context: Context,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Return an AsyncClient that follows redirects and honors the configured proxy."""

    kwargs: dict[str, object] = {
        "follow_redirects": True,
        "headers": {"User-Agent": USER_AGENT},
    }
    if transport is not None:
        kwargs["transport"] = transport
    else:
        proxy = context.proxy
        if proxy:
            kwargs["proxy"] = proxy
    return httpx.AsyncClient(**kwargs)
