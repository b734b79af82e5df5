import mimetypes
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from funnelbot.logging_config import get_logger
from funnelbot.services.result import MEDIA_FETCH_FAILED, MEDIA_UNREACHABLE, Result

logger = get_logger("media_service")

DEFAULT_FILENAME = "archivo"
DEFAULT_MIME = "application/octet-stream"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass
class MediaFile:
    data: bytes
    mime: str
    filename: str


def build_media_url(base_url: str, ref: str) -> str:
    ref = (ref or "").strip()
    if ref.startswith("http://") or ref.startswith("https://"):
        return ref
    return f"{base_url.rstrip('/')}/{ref.lstrip('/')}"


def guess_mime(url: str) -> str:
    mime, _ = mimetypes.guess_type(urlparse(url).path.lower())
    return mime or DEFAULT_MIME


def filename_from_url(url: str) -> str:
    try:
        name = PurePosixPath(unquote(urlparse(url).path)).name
    except ValueError:
        return DEFAULT_FILENAME
    return name or DEFAULT_FILENAME


class MediaFetcher:
    """Resolves catalog media refs into bytes ready for the transport."""

    def __init__(
        self,
        base_url: str,
        *,
        head_timeout: float = 10.0,
        fetch_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.head_timeout = head_timeout
        self.fetch_timeout = fetch_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        )

    async def is_reachable(self, url: str) -> bool:
        try:
            async with self._client(self.head_timeout) as client:
                response = await client.head(url)
                return 200 <= response.status_code < 400
        except httpx.HTTPError as e:
            logger.warning(f"Media HEAD failed: {url}: {e}")
            return False

    async def resolve(self, ref: str) -> Result[MediaFile]:
        url = build_media_url(self.base_url, ref)
        if not await self.is_reachable(url):
            logger.error("Media not reachable", extra={"context": {"url": url}})
            return Result.failure(f"Media not reachable: {url}", MEDIA_UNREACHABLE)

        try:
            async with self._client(self.fetch_timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Media download failed", extra={"context": {"url": url, "error": str(e)}})
            return Result.failure(str(e), MEDIA_FETCH_FAILED)

        content_type = response.headers.get("content-type")
        mime = content_type.split(";")[0].strip() if content_type else guess_mime(url)
        return Result.success(MediaFile(data=response.content, mime=mime, filename=filename_from_url(url)))
