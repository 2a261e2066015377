"""Current-version lookup against the object service."""

import asyncio
import re
from types import TracebackType
from typing import Optional

import aiohttp
import structlog

from utils.logging import get_logger
from workflow_archiver.config import VersionServiceConfig
from workflow_archiver.exceptions import VersionLookupError, VersionNotFoundError

FALLBACK_VERSION = 1


class VersionResolver:
    """Resolves the current version number of a digital object.

    Objects that are registered but not yet in the backing store have no
    version; the service reports them with a recognizable error body and
    they are archived as version 1. Any other failure propagates.

    Use as an async context manager so one HTTP session serves the run.
    """

    def __init__(
        self,
        config: VersionServiceConfig,
        session: Optional[aiohttp.ClientSession] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or get_logger("version_resolver")
        self._not_found = re.compile(config.not_found_pattern)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "VersionResolver":
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def version_url(self, druid: str) -> str:
        return f"{self.config.uri}/dor/objects/{druid}/versions/current"

    async def fetch_current_version(self, druid: str) -> str:
        """Ask the service for the current version text.

        Raises:
            VersionNotFoundError: The object is not in the backing store yet
            VersionLookupError: Any other HTTP or transport failure
        """
        if self._session is None:
            raise VersionLookupError(
                "VersionResolver used outside 'async with'",
                context={"druid": druid},
            )

        url = self.version_url(druid)
        try:
            async with self._session.get(url) as response:
                body = await response.text()
                if response.status >= 400:
                    # the service reports a missing object as a 500 with this body
                    error_class = (
                        VersionNotFoundError
                        if response.status == 500 and self._not_found.search(body)
                        else VersionLookupError
                    )
                    raise error_class(
                        f"Version lookup failed with HTTP {response.status}",
                        status=response.status,
                        body=body[:500],
                        context={"druid": druid, "url": url},
                    )
                return body
        except aiohttp.ClientError as e:
            raise VersionLookupError(
                f"Version lookup request failed: {e}",
                context={"druid": druid, "url": url},
            ) from e
        except asyncio.TimeoutError as e:
            raise VersionLookupError(
                "Version lookup timed out",
                context={"druid": druid, "url": url},
            ) from e

    async def resolve_version(self, druid: str) -> int:
        """Return the object's current version, or 1 if it is not yet stored.

        Raises:
            VersionLookupError: For any failure other than not-found
        """
        try:
            text = await self.fetch_current_version(druid)
        except VersionNotFoundError as e:
            self.logger.warning(
                "Object not found in backing store, using fallback version",
                druid=druid,
                error=str(e),
                version=FALLBACK_VERSION,
            )
            return FALLBACK_VERSION

        text = text.strip()
        if not text.isdigit():
            raise VersionLookupError(
                f"Version service returned a non-numeric version: {text[:50]!r}",
                body=text[:500],
                context={"druid": druid},
            )
        return int(text)
