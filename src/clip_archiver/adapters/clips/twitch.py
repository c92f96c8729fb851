"""Twitch Helix clips adapter.

Wraps the four endpoints the archive pipeline needs:

- client-credentials token issuance
- user lookup by login (id + account creation time)
- cursor-paginated clip listing filtered by broadcaster and time range
- batch category lookup (up to 100 ids per call)

Rate limiting (429) and server errors are retried with a capped backoff;
any other non-2xx status fails the request immediately.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx

from clip_archiver.adapters.clips.base import (
    ClipsAdapter,
    ClipsAPIError,
    UpstreamNotConfiguredError,
    UpstreamPermanentError,
    UpstreamTransientError,
)
from clip_archiver.config import settings
from clip_archiver.domain.models import (
    BroadcasterInfo,
    ClipPage,
    ClipRecord,
    GameInfo,
    format_timestamp,
    parse_timestamp,
)
from clip_archiver.logging import get_logger

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
MAX_GAME_IDS = 100
TOKEN_EXPIRY_BUFFER_SECONDS = 60


class TwitchClipsAdapter(ClipsAdapter):
    """Fetches clips from the Twitch Helix API using an app access token."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        api_url: str | None = None,
        token_url: str | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        max_attempts: int | None = None,
        backoff_cap_seconds: float | None = None,
        page_delay_seconds: float | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the adapter.

        Args:
            client_id: Twitch application client ID (defaults to settings).
            client_secret: Twitch application client secret (defaults to settings).
            api_url: Helix base URL.
            token_url: OAuth token endpoint.
            page_size: Clips per page, capped at 100.
            max_pages: Safety cap on pages per window.
            max_attempts: Total attempts per request on 429/5xx.
            backoff_cap_seconds: Upper bound on a single backoff delay.
            page_delay_seconds: Pacing delay between consecutive pages.
            timeout: HTTP timeout in seconds.
            client: Pre-built HTTP client (the adapter will not close it).
            sleep: Awaitable sleep used for pacing and backoff.
        """
        self.client_id = client_id if client_id is not None else settings.twitch_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.twitch_client_secret
        )
        self.api_url = (api_url or settings.twitch_api_url).rstrip("/")
        self.token_url = token_url or settings.twitch_token_url
        self.page_size = min(page_size or settings.clips_page_size, MAX_PAGE_SIZE)
        self.max_pages = max_pages or settings.clips_max_pages_per_window
        self.max_attempts = max_attempts or settings.clips_max_attempts
        self.backoff_cap_seconds = (
            backoff_cap_seconds
            if backoff_cap_seconds is not None
            else settings.clips_backoff_cap_seconds
        )
        self.page_delay_seconds = (
            page_delay_seconds
            if page_delay_seconds is not None
            else settings.clips_page_delay_seconds
        )
        self.timeout = timeout or settings.clips_request_timeout
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @property
    def name(self) -> str:
        return "twitch"

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def _get_access_token(self) -> str:
        """Return the cached app token, requesting a new one when it has expired."""
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token
        return await self._request_token()

    async def refresh_token(self) -> None:
        """Request a fresh client-credentials token.

        Raises:
            UpstreamNotConfiguredError: If credentials are missing.
            ClipsAPIError: If the token endpoint rejects the request.
        """
        await self._request_token()

    async def _request_token(self) -> str:
        """Fetch and cache a client-credentials token.

        Raises:
            UpstreamNotConfiguredError: If credentials are missing.
            ClipsAPIError: If the token endpoint rejects the request.
        """
        if not self.is_configured:
            raise UpstreamNotConfiguredError("Twitch API credentials are not configured")

        client = await self._get_client()
        try:
            response = await client.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.TransportError as e:
            raise UpstreamTransientError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "twitch_token_error",
                status=response.status_code,
                body=response.text[:500],
            )
            error_cls = (
                UpstreamTransientError
                if _is_retryable(response.status_code)
                else UpstreamPermanentError
            )
            raise error_cls(
                f"Token request failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            token_data = response.json()
            access_token = token_data["access_token"]
        except (ValueError, KeyError) as e:
            raise UpstreamPermanentError("Token response has no access_token") from e

        expires_in = int(token_data.get("expires_in", 3600))
        token = str(access_token)
        self._access_token = token
        self._token_expires_at = (
            time.monotonic() + max(expires_in - TOKEN_EXPIRY_BUFFER_SECONDS, 0)
        )
        logger.debug("twitch_token_refreshed", expires_in=expires_in)
        return token

    # ------------------------------------------------------------------
    # Request loop
    # ------------------------------------------------------------------

    def _backoff_delay(self, attempt: int) -> float:
        """Linear backoff starting at two seconds, capped."""
        return min(self.backoff_cap_seconds, 1.0 + attempt)

    async def _get(self, path: str, params: list[tuple[str, str]]) -> dict[str, Any]:
        """GET a Helix endpoint with retry on 429/5xx.

        Raises:
            UpstreamTransientError: When every attempt hit a retryable failure.
            UpstreamPermanentError: On any other non-2xx status or malformed JSON.
        """
        client = await self._get_client()
        url = f"{self.api_url}/{path}"
        attempt = 0
        reauthenticated = False

        while True:
            token = await self._get_access_token()
            status_code: int | None = None
            try:
                response = await client.get(
                    url,
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Client-Id": str(self.client_id),
                    },
                )
                status_code = response.status_code
            except httpx.TransportError as e:
                logger.warning("twitch_transport_error", path=path, error=str(e))
                response = None

            if response is not None:
                if status_code == 401 and not reauthenticated:
                    # Token revoked or expired early; one fresh token, then give up
                    reauthenticated = True
                    await self.refresh_token()
                    continue

                if 200 <= response.status_code < 300:
                    try:
                        payload = response.json()
                    except ValueError as e:
                        raise UpstreamPermanentError(
                            f"Malformed JSON from {path}", status_code=status_code
                        ) from e
                    if not isinstance(payload, dict):
                        raise UpstreamPermanentError(
                            f"Unexpected payload from {path}", status_code=status_code
                        )
                    return payload

                if not _is_retryable(response.status_code):
                    logger.error(
                        "twitch_api_error",
                        path=path,
                        status=response.status_code,
                        body=response.text[:500],
                    )
                    raise UpstreamPermanentError(
                        f"Twitch API error on {path}: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

            attempt += 1
            if attempt >= self.max_attempts:
                logger.error(
                    "twitch_api_retries_exhausted",
                    path=path,
                    status=status_code,
                    attempts=attempt,
                )
                raise UpstreamTransientError(
                    f"Twitch API unavailable on {path} after {attempt} attempts"
                    + (f" (HTTP {status_code})" if status_code else ""),
                    status_code=status_code,
                )

            delay = self._backoff_delay(attempt)
            logger.warning(
                "twitch_api_retry",
                path=path,
                status=status_code,
                attempt=attempt,
                delay=delay,
            )
            await self._sleep(delay)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_user(self, login: str) -> BroadcasterInfo | None:
        """Look up a channel by login."""
        payload = await self._get("users", [("login", login)])
        data = payload.get("data") or []
        if not data:
            return None

        user = data[0]
        try:
            return BroadcasterInfo(
                broadcaster_id=str(user["id"]),
                login=user.get("login", login),
                display_name=user.get("display_name"),
                created_at=parse_timestamp(user.get("created_at")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamPermanentError(f"Malformed user record for '{login}': {e}") from e

    async def iter_window_pages(
        self,
        broadcaster_id: str,
        started_at: datetime,
        ended_at: datetime,
    ) -> AsyncIterator[ClipPage]:
        """Page through the clips of one window, pacing between pages."""
        cursor: str | None = None
        base_params = [
            ("broadcaster_id", broadcaster_id),
            ("first", str(self.page_size)),
            ("started_at", format_timestamp(started_at)),
            ("ended_at", format_timestamp(ended_at)),
        ]

        for page_number in range(1, self.max_pages + 1):
            params = list(base_params)
            if cursor:
                params.append(("after", cursor))

            payload = await self._get("clips", params)
            data = payload.get("data")
            if not isinstance(data, list):
                raise UpstreamPermanentError("Clips response has no data array")
            if not data:
                break

            records: list[ClipRecord] = []
            malformed = 0
            for item in data:
                try:
                    records.append(ClipRecord.from_api(item))
                except (ValueError, TypeError, AttributeError) as e:
                    malformed += 1
                    logger.warning("twitch_clip_malformed", error=str(e))

            next_cursor = (payload.get("pagination") or {}).get("cursor") or None
            logger.debug(
                "twitch_clips_page",
                broadcaster_id=broadcaster_id,
                page=page_number,
                clips=len(records),
                has_more=bool(next_cursor),
            )
            yield ClipPage(records=records, cursor=next_cursor, malformed=malformed)

            if not next_cursor or next_cursor == cursor:
                break
            cursor = next_cursor

            await self._sleep(self.page_delay_seconds)
        else:
            logger.warning(
                "twitch_clips_page_cap_reached",
                broadcaster_id=broadcaster_id,
                started_at=format_timestamp(started_at),
                ended_at=format_timestamp(ended_at),
                max_pages=self.max_pages,
            )

    async def get_games(self, game_ids: list[str]) -> dict[str, GameInfo]:
        """Resolve up to 100 category ids."""
        unique_ids = list(dict.fromkeys(gid for gid in game_ids if gid))
        if not unique_ids:
            return {}
        if len(unique_ids) > MAX_GAME_IDS:
            raise ValueError(f"At most {MAX_GAME_IDS} game ids per request")

        payload = await self._get("games", [("id", gid) for gid in unique_ids])
        games: dict[str, GameInfo] = {}
        for game in payload.get("data") or []:
            game_id = str(game.get("id", ""))
            if not game_id:
                continue
            games[game_id] = GameInfo(
                game_id=game_id,
                name=game.get("name") or "",
                box_art_url=game.get("box_art_url") or None,
            )
        return games

    async def health_check(self) -> bool:
        """Check that a token can be obtained."""
        try:
            await self._get_access_token()
            return True
        except ClipsAPIError as e:
            logger.warning("twitch_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500
