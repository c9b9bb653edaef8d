"""
Track reference parsing.

Users add tracks by pasting either a bare catalog id or a link copied from the
catalog's web player. Two link shapes are accepted:

- https://music.yandex.ru/track/12345
- https://music.yandex.ru/album/99/track/12345

Everything else is rejected with `InvalidTrackReference`.
"""

from __future__ import annotations

import re
from typing import Final
from urllib.parse import urlsplit

from musicdirect.core import InvalidTrackReference

ACCEPTED_SHAPES: Final[str] = (
    "a numeric track id (e.g. 12345), a '.../track/<id>' link "
    "or a '.../album/<albumId>/track/<id>' link"
)

_BARE_ID = re.compile(r"[0-9]+")
# Bare /track/<id> must end the path; the album form may appear anywhere.
_TRACK_AT_END = re.compile(r"/track/([0-9]+)/?$")
_ALBUM_TRACK = re.compile(r"/album/[0-9]+/track/([0-9]+)")


def extract_track_id(raw: str) -> int:
    """
    Extract a positive track id from a bare number or a catalog URL.

    The bare-integer check runs first; URL matching is the fallback.

    Raises:
        InvalidTrackReference: if no track id can be extracted.
    """
    text = (raw or "").strip()
    if not text:
        raise InvalidTrackReference(f"Empty track reference; expected {ACCEPTED_SHAPES}")

    if _BARE_ID.fullmatch(text):
        return _positive(int(text), raw)

    path = urlsplit(text).path or text
    match = _TRACK_AT_END.search(path) or _ALBUM_TRACK.search(text)
    if match is None:
        raise InvalidTrackReference(f"Unrecognized track reference {raw!r}; expected {ACCEPTED_SHAPES}")

    return _positive(int(match.group(1)), raw)


def _positive(track_id: int, raw: str) -> int:
    if track_id <= 0:
        raise InvalidTrackReference(f"Track id must be positive, got {raw!r}")
    return track_id
