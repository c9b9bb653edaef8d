"""
Catalog resolution for MusicDirect.

The catalog translates a track id into display and stream metadata. It is an
external collaborator: it may be slow or fail, and it never mutates local
state. Every failure surfaces as `ResolutionError`, which the playlist
coordinator treats as "metadata unavailable" rather than "track invalid".

Resolvers:
- YandexMusicResolver: talks to the Yandex Music API over httpx
- UnconfiguredResolver: used until catalog credentials are saved
"""

from __future__ import annotations

import hashlib
import logging
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from musicdirect.core import ResolutionError

if TYPE_CHECKING:
    from musicdirect.config import ServerConfig
    from musicdirect.core.db.models import SettingsRow

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.music.yandex.net"
COVER_SIZE = "400x400"

# Salt used by the catalog to sign direct download links.
_SIGN_SALT = "XGRlBW9FXlekgbPrRHuSiA"


@dataclass(frozen=True, slots=True)
class TrackMetadata:
    """Display and stream metadata for one catalog track."""

    track_id: int
    title: str
    artist: str
    cover_url: str
    duration_ms: int
    stream_url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CatalogResolver(Protocol):
    """Resolves a track id into metadata, raising ResolutionError on any failure."""

    async def resolve(self, track_id: int) -> TrackMetadata: ...


class UnconfiguredResolver:
    """Resolver used when no catalog credentials are stored."""

    async def resolve(self, track_id: int) -> TrackMetadata:
        raise ResolutionError(f"Catalog is not configured; cannot resolve track {track_id}")

    async def aclose(self) -> None:
        return None


def normalize_cover_uri(cover_uri: str, size: str = COVER_SIZE) -> str:
    """
    Turn a catalog cover URI template into a fetchable URL.

    Catalog URIs look like `avatars.yandex.net/get-music-content/.../%%` where
    `%%` (sometimes URL-encoded as `%25%25`) is the size placeholder.
    """
    if not cover_uri:
        return ""
    uri = cover_uri.replace("%25%25", size).replace("%%", size).replace("%", "")
    if not uri.startswith(("http://", "https://")):
        uri = "https://" + uri.lstrip("/")
    return uri


class YandexMusicResolver:
    """
    Catalog resolver backed by the Yandex Music HTTP API.

    Resolution takes three requests:
    1. /tracks/{id} for title, artist, cover and duration
    2. /tracks/{id}/download-info for the list of available encodings
    3. the chosen encoding's download-info XML, from which the signed
       direct stream URL is built
    """

    def __init__(
        self,
        access_token: str,
        *,
        user_id: int | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.user_id = user_id
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._headers = {"Authorization": f"OAuth {access_token}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve(self, track_id: int) -> TrackMetadata:
        info = await self._get_track_info(track_id)
        stream_url = await self._get_stream_url(track_id)

        try:
            artists = info.get("artists") or [{}]
            albums = info.get("albums") or [{}]
            return TrackMetadata(
                track_id=int(track_id),
                title=str(info["title"]),
                artist=str(artists[0].get("name", "")),
                cover_url=normalize_cover_uri(
                    str(albums[0].get("coverUri") or info.get("coverUri") or "")
                ),
                duration_ms=int(info.get("durationMs") or 0),
                stream_url=stream_url,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ResolutionError(f"Malformed catalog response for track {track_id}: {e}") from e

    async def _get_json(self, url: str) -> Any:
        try:
            response = await self._client.get(url, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ResolutionError(f"Catalog request failed for {url}: {e}") from e

        if response.status_code != 200:
            raise ResolutionError(f"Catalog returned HTTP {response.status_code} for {url}")

        try:
            return response.json()["result"]
        except (ValueError, KeyError, TypeError) as e:
            raise ResolutionError(f"Catalog returned malformed JSON for {url}") from e

    async def _get_track_info(self, track_id: int) -> dict[str, Any]:
        result = await self._get_json(f"{self.base_url}/tracks/{int(track_id)}")
        if not isinstance(result, list) or not result or not isinstance(result[0], dict):
            raise ResolutionError(f"No track information found for id {track_id}")
        return result[0]

    async def _get_stream_url(self, track_id: int) -> str:
        variants = await self._get_json(f"{self.base_url}/tracks/{int(track_id)}/download-info")
        if not isinstance(variants, list):
            raise ResolutionError(f"Malformed download info list for track {track_id}")
        mp3 = [
            v
            for v in variants
            if isinstance(v, dict) and v.get("codec") == "mp3" and v.get("downloadInfoUrl")
        ]
        if not mp3:
            raise ResolutionError(f"No mp3 download available for track {track_id}")
        best = max(mp3, key=_bitrate)

        try:
            response = await self._client.get(str(best["downloadInfoUrl"]), headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ResolutionError(f"Download info request failed for track {track_id}: {e}") from e
        if response.status_code != 200:
            raise ResolutionError(
                f"Download info returned HTTP {response.status_code} for track {track_id}"
            )

        return build_stream_url(response.text)


def _bitrate(variant: dict[str, Any]) -> int:
    # Unparseable bitrates rank below every real one
    try:
        return int(variant.get("bitrateInKbps") or 0)
    except (TypeError, ValueError):
        return 0


def build_stream_url(download_info_xml: str) -> str:
    """Build the signed direct-download URL from a download-info XML document."""
    try:
        root = ET.fromstring(download_info_xml)
        host = root.findtext("host") or ""
        path = root.findtext("path") or ""
        ts = root.findtext("ts") or ""
        s = root.findtext("s") or ""
    except ET.ParseError as e:
        raise ResolutionError(f"Malformed download info: {e}") from e

    if not (host and path and ts and s):
        raise ResolutionError("Download info is missing host/path/ts/s")

    sign = hashlib.md5((_SIGN_SALT + path[1:] + s).encode()).hexdigest()
    return f"https://{host}/get-mp3/{sign}/{ts}{path}"


def build_resolver(
    settings: SettingsRow | None,
    config: ServerConfig | None = None,
) -> CatalogResolver:
    """Create the resolver for the stored credentials (or an unconfigured one)."""
    if settings is None or not settings.access_token:
        logger.warning("No catalog credentials stored; track metadata will be unavailable")
        return UnconfiguredResolver()

    kwargs: dict[str, Any] = {}
    if config is not None:
        kwargs["base_url"] = config.catalog_base_url
        kwargs["timeout_s"] = config.catalog_timeout_s

    logger.info("Using Yandex Music catalog for user %s", settings.user_id)
    return YandexMusicResolver(settings.access_token, user_id=settings.user_id, **kwargs)
