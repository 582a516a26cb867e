"""
TibiaData API Client

Purpose
-------
The only component that talks to TibiaData v4. Fetches guild rosters, world
guild listings and character details, and returns plain snapshots.

Responsibilities
----------------
- Own one ``httpx.AsyncClient`` (base URL, User-Agent, timeout)
- Parse responses into ``RosterSnapshot`` / ``GuildSummary`` / ``CharacterSnapshot``
- Degrade every failure to ``None`` / ``[]`` / ``False``

Error Handling
--------------
Network errors, non-2xx responses, a non-200 ``information.status.http_code``
and parse failures are logged at WARNING. Public methods never raise;
callers treat absence as a normal outcome.

Usage Example
-------------
>>> async with TibiaDataClient.from_config() as client:
>>>     roster = await client.fetch_guild_roster("Red Rose")
>>>     if roster is None:
>>>         ...
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from guildwatch.core.config.config import Config
from guildwatch.core.exceptions import ExternalServiceError
from guildwatch.core.logging.logger import get_logger

from .models import CharacterSnapshot, GuildSummary, RosterSnapshot

logger = get_logger(__name__)

SERVICE_NAME = "TibiaData"
SEARCH_RESULT_LIMIT = 10

_PARSE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


class TibiaDataClient:
    """
    Async TibiaData v4 client.

    Args:
        base_url: API root, e.g. ``https://api.tibiadata.com/v4``
        timeout_seconds: Per-request timeout
        user_agent: User-Agent header value
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        user_agent: str = "GuildWatch/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout_seconds,
            headers={
                "User-Agent": user_agent,
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_config(
        cls, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> TibiaDataClient:
        return cls(
            base_url=Config.TIBIADATA_BASE_URL,
            timeout_seconds=float(Config.TIBIADATA_TIMEOUT_SECONDS),
            user_agent=Config.TIBIADATA_USER_AGENT,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> TibiaDataClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # ========================================================================
    # Transport
    # ========================================================================

    async def _get_json(self, endpoint: str) -> Dict[str, Any]:
        """
        GET ``endpoint`` and return the decoded body.

        Raises
        ------
        ExternalServiceError
            On network failure, non-2xx status, undecodable body or a
            non-200 ``information.status.http_code``.
        """
        try:
            response = await self._client.get(endpoint)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                SERVICE_NAME, endpoint, f"{type(exc).__name__}: {exc}"
            ) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalServiceError(
                SERVICE_NAME,
                endpoint,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                SERVICE_NAME, endpoint, "invalid JSON body", response.status_code
            ) from exc

        if not isinstance(payload, dict):
            raise ExternalServiceError(
                SERVICE_NAME, endpoint, "unexpected body shape", response.status_code
            )

        api_code = (
            ((payload.get("information") or {}).get("status") or {}).get("http_code")
        )
        if api_code is not None and api_code != 200:
            raise ExternalServiceError(
                SERVICE_NAME,
                endpoint,
                f"API status {api_code}",
                status_code=api_code,
            )

        return payload

    @staticmethod
    def _log_failure(operation: str, exc: Exception, **context: Any) -> None:
        extra: Dict[str, Any] = {
            "operation": operation,
            "error_type": type(exc).__name__,
            "error": str(exc),
            **context,
        }
        if isinstance(exc, ExternalServiceError):
            extra["status_code"] = exc.status_code
        logger.warning(f"TibiaData {operation} failed", extra=extra)

    # ========================================================================
    # Public API
    # ========================================================================

    async def fetch_guild_roster(self, guild_name: str) -> Optional[RosterSnapshot]:
        """Roster of ``guild_name``, or None when unavailable."""
        endpoint = f"/guild/{quote(guild_name, safe='')}"
        try:
            payload = await self._get_json(endpoint)
            guild = payload.get("guild")
            if not guild or not guild.get("name"):
                logger.info(
                    "Guild not found on TibiaData",
                    extra={"guild_name": guild_name},
                )
                return None
            roster = RosterSnapshot.from_payload(guild)
        except (ExternalServiceError, *_PARSE_ERRORS) as exc:
            self._log_failure("fetch_guild_roster", exc, guild_name=guild_name)
            return None

        logger.debug(
            "Fetched guild roster",
            extra={
                "guild_name": roster.name,
                "world": roster.world,
                "members": len(roster.members),
            },
        )
        return roster

    async def list_world_guilds(self, world: str) -> List[GuildSummary]:
        """Every active guild on ``world``; empty on failure."""
        endpoint = f"/guilds/{quote(world, safe='')}"
        try:
            payload = await self._get_json(endpoint)
            active = (payload.get("guilds") or {}).get("active") or []
            return [GuildSummary.from_payload(item) for item in active]
        except (ExternalServiceError, *_PARSE_ERRORS) as exc:
            self._log_failure("list_world_guilds", exc, world=world)
            return []

    async def validate_world(self, world: str) -> bool:
        """True only when the world's guild listing loads with API status 200."""
        endpoint = f"/guilds/{quote(world, safe='')}"
        try:
            payload = await self._get_json(endpoint)
        except ExternalServiceError as exc:
            self._log_failure("validate_world", exc, world=world)
            return False

        status = (payload.get("information") or {}).get("status") or {}
        return status.get("http_code") == 200

    async def search_guilds(self, world: str, query: str) -> List[GuildSummary]:
        """Up to 10 guilds on ``world`` whose name contains ``query`` (case-insensitive)."""
        needle = query.strip().lower()
        guilds = await self.list_world_guilds(world)
        matches = [g for g in guilds if needle in g.name.lower()]
        return matches[:SEARCH_RESULT_LIMIT]

    async def fetch_character(self, name: str) -> Optional[CharacterSnapshot]:
        """Character profile with recent deaths, or None when unavailable."""
        endpoint = f"/character/{quote(name, safe='')}"
        try:
            payload = await self._get_json(endpoint)
            character = payload.get("character")
            if not character:
                return None
            return CharacterSnapshot.from_payload(character)
        except (ExternalServiceError, *_PARSE_ERRORS) as exc:
            self._log_failure("fetch_character", exc, character=name)
            return None
