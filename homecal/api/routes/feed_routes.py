"""Calendar feed route for homecal."""

from __future__ import annotations

import datetime
import hashlib
import logging
from typing import Any

from aiohttp import web

from ...core.config_loader import Config
from ...core.protocols import FeedTokenResolver, TimeProvider
from ...feed.renderer import ICS_CONTENT_TYPE, FeedRenderer

logger = logging.getLogger(__name__)

FEED_PATH = "/api/v1/calendar/feed/{token}.ics"
CACHE_CONTROL = "no-cache, must-revalidate"


def _etag_matches(request: web.Request, digest: str) -> bool:
    if_none_match = request.if_none_match
    if not if_none_match:
        return False
    return any(tag.value == digest or tag.value == "*" for tag in if_none_match)


def _recently_fetched(request: web.Request, now: datetime.datetime, window_seconds: int) -> bool:
    since = request.if_modified_since
    if since is None:
        return False
    return since > now - datetime.timedelta(seconds=window_seconds)


def register_feed_routes(
    app: web.Application,
    renderer: FeedRenderer,
    token_resolver: FeedTokenResolver,
    config: Config,
    time_provider: TimeProvider,
) -> None:
    """Register the token-authenticated ICS feed endpoint.

    Args:
        app: aiohttp web application
        renderer: Feed renderer backed by the calendar store
        token_resolver: Maps feed tokens to (user, tenant)
        config: Application configuration (feed window and caching)
        time_provider: Time provider callable
    """

    async def calendar_feed(request: web.Request) -> Any:
        """Serve a user's calendar as text/calendar.

        Unknown and revoked tokens both get an empty 404.
        """
        token = request.match_info["token"]
        principal = await token_resolver.resolve_token(token)
        if principal is None:
            logger.warning("Feed requested with unknown or revoked token")
            return web.Response(status=404)

        now = time_provider()
        headers = {"Cache-Control": CACHE_CONTROL}

        if _recently_fetched(request, now, config.feed_not_modified_window_seconds):
            return web.Response(status=304, headers=headers)

        range_start, range_end = renderer.default_range(now)
        body = await renderer.render(principal.tenant_id, principal.user_id, range_start, range_end)
        digest = hashlib.sha256(body).hexdigest()

        if _etag_matches(request, digest):
            response = web.Response(status=304, headers=headers)
            response.etag = digest
            return response

        response = web.Response(body=body, content_type=ICS_CONTENT_TYPE, charset="utf-8", headers=headers)
        response.etag = digest
        response.last_modified = now
        return response

    app.router.add_get(FEED_PATH, calendar_feed)
