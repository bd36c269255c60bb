"""
Declarative badge and border selection.

Every rule here is a pure function of an item (plus, for borders, the show status and the
current time) and a mapping table. Adding a badge or a status value is a one-line change to
the tables below.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from core.models import MediaItem, MediaVariant, Movie
from utils import assets
from utils.logger import get_logger

logger = get_logger(__name__)

# ---- resolution / edition / audience -------------------------------------

RESOLUTION_BADGES: Dict[str, str] = {
    "4k": "Ultra-HD.png",
    "ultra hd": "Ultra-HD.png",
    "1080": "1080P.png",
    "1080p": "1080P.png",
    "fhd": "1080P.png",
}

# First matching keyword wins.
EDITION_BADGES: List[Tuple[Tuple[str, ...], str]] = [
    (("director's cut", "director cut"), "Directors-Cut.png"),
    (("extended",), "Extended-Edition.png"),
    (("remastered",), "Remastered.png"),
    (("uncut",), "Uncut.png"),
    (("imax",), "IMAX.png"),
]

AUDIENCE_BADGES: List[Tuple[float, str]] = [
    (8.0, "audience_score_high.png"),
    (6.0, "audience_score_mid.png"),
]
AUDIENCE_BADGE_LOW = "audience_score_low.png"


def resolution_badge(media: Optional[MediaVariant]) -> Optional[str]:
    if media is None:
        return None
    return RESOLUTION_BADGES.get((media.video_resolution or "").lower())


def edition_badge(title: str) -> Optional[str]:
    lowered = title.lower()
    for keywords, filename in EDITION_BADGES:
        if any(k in lowered for k in keywords):
            return filename
    return None


def audience_badge(rating: float) -> str:
    for threshold, filename in AUDIENCE_BADGES:
        if rating >= threshold:
            return filename
    return AUDIENCE_BADGE_LOW


# ---- show status ---------------------------------------------------------

STATUS_BORDERS: Dict[str, str] = {
    "returning series": "returning_border.png",
    "returning": "returning_border.png",
    "canceled": "cancelled_full.png",
    "cancelled": "cancelled_full.png",
    "ended": "ended_border.png",
    "in production": "airing_border.png",
    "airing": "airing_border.png",
}
DEFAULT_STATUS_BORDER = "airing_border.png"


def status_border(status: str) -> str:
    return STATUS_BORDERS.get(status.strip().lower(), DEFAULT_STATUS_BORDER)


# ---- borders -------------------------------------------------------------

class BorderKind(str, Enum):
    STATUS = "status"
    RECENTLY_ADDED = "recently_added"
    INNER_GLOW = "inner_glow"


@dataclass(frozen=True)
class BorderChoice:
    kind: BorderKind
    asset: str   # path relative to the overlay root


def select_border(item: MediaItem, show_status: Optional[str] = None, now: Optional[float] = None) -> BorderChoice:
    """Status border, else recently-added border, else inner glow. Exactly one is chosen."""
    if show_status and not isinstance(item, Movie):
        return BorderChoice(BorderKind.STATUS, f"{assets.STATUS_DIR}/{status_border(show_status)}")
    if item.is_recently_added(time.time() if now is None else now):
        return BorderChoice(BorderKind.RECENTLY_ADDED, assets.RECENTLY_ADDED)
    return BorderChoice(BorderKind.INNER_GLOW, assets.INNER_GLOW)


# ---- codec combo ---------------------------------------------------------

VIDEO_STREAM = 1
AUDIO_STREAM = 2

DOLBY_VISION_KEYS = ("doviprofile", "DOVIProfile", "DOVIPresent")


@dataclass
class StreamFlags:
    has_streams: bool = False
    is_dv: bool = False
    is_hdr: bool = False
    is_plus: bool = False
    has_atmos: bool = False
    has_truehd: bool = False
    has_dts_hd: bool = False
    has_dts_x: bool = False
    has_dd_plus: bool = False
    last_audio_codec: str = ""


VIDEO_PRECEDENCE: List[Tuple[Callable[[StreamFlags], bool], str]] = [
    (lambda f: f.is_dv and f.is_hdr, "DV-HDR"),
    (lambda f: f.is_dv and f.is_plus, "DV-Plus"),
    (lambda f: f.is_dv, "DV"),
    (lambda f: f.is_plus, "Plus"),
    (lambda f: f.is_hdr, "HDR"),
]

AUDIO_PRECEDENCE: List[Tuple[Callable[[StreamFlags], bool], str]] = [
    (lambda f: f.has_truehd and f.has_atmos, "TrueHD-Atmos"),
    (lambda f: f.has_truehd, "TrueHD"),
    (lambda f: f.has_dts_x, "DTS-X"),
    (lambda f: f.has_dts_hd, "DTS-HD"),
    (lambda f: f.has_atmos, "Atmos"),
    (lambda f: f.has_dd_plus, "DigitalPlus"),
]

# Coarse ``audioCodec`` fallback used when no stream payload is available.
AUDIO_CODEC_FALLBACK: Dict[str, str] = {
    "truehd": "TrueHD",
    "dca": "DTS-HD",
    "dts": "DTS-HD",
    "eac3": "DigitalPlus",
    "ac3": "DigitalPlus",
}

# Plain stereo codecs never have a combined badge.
PLAIN_AUDIO_CODECS = ("aac", "mp3")


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _text(stream: Dict[str, Any], key: str) -> str:
    value = stream.get(key)
    return value.lower() if isinstance(value, str) else ""


def _stream_type(stream: Dict[str, Any]) -> int:
    try:
        return int(stream.get("streamType", 0))
    except (TypeError, ValueError):
        return 0


def _apply_stream(flags: StreamFlags, stream: Dict[str, Any]) -> None:
    kind = _stream_type(stream)
    display = _text(stream, "displayTitle")
    title = _text(stream, "title")

    if kind == VIDEO_STREAM:
        if any(key in stream for key in DOLBY_VISION_KEYS):
            flags.is_dv = True
        if any(marker in text for marker in ("dolby vision", "dovi") for text in (display, title)):
            flags.is_dv = True
        if "hdr10+" in display or "hdr10+" in title:
            flags.is_plus = True
        elif "hdr" in display or "hdr" in title:
            flags.is_hdr = True

    elif kind == AUDIO_STREAM:
        codec = _text(stream, "codec")
        flags.last_audio_codec = codec
        if "atmos" in display or "atmos" in title:
            flags.has_atmos = True
        if codec == "truehd":
            flags.has_truehd = True
        elif codec in ("dca", "dts"):
            flags.has_dts_hd = True
            if _text(stream, "audioProfile") == "dts:x":
                flags.has_dts_x = True
        elif codec in ("eac3", "ac3"):
            flags.has_dd_plus = True


def scan_streams(parts: Any) -> StreamFlags:
    """Walk ``Part`` -> ``Stream``; either level may be a list or a single object."""
    flags = StreamFlags()
    for part in _as_list(parts):
        if not isinstance(part, dict):
            continue
        streams = part.get("Stream", part.get("stream"))
        if streams is None:
            continue
        flags.has_streams = True
        for stream in _as_list(streams):
            if isinstance(stream, dict):
                _apply_stream(flags, stream)
    return flags


def _first_match(flags: StreamFlags, table: List[Tuple[Callable[[StreamFlags], bool], str]]) -> Optional[str]:
    for predicate, name in table:
        if predicate(flags):
            return name
    return None


def codec_badge(media: Optional[MediaVariant]) -> Optional[str]:
    """
    Combined video/audio badge filename, e.g. ``DV-HDR-TrueHD-Atmos.png``.

    Without any stream payload only the coarse audio codec is used (no video component).
    """
    if media is None:
        return None

    flags = scan_streams(media.parts)
    if flags.has_streams:
        video = _first_match(flags, VIDEO_PRECEDENCE)
        audio = _first_match(flags, AUDIO_PRECEDENCE)
    else:
        video = None
        audio = AUDIO_CODEC_FALLBACK.get((media.audio_codec or "").lower())

    name = "-".join(part for part in (video, audio) if part)
    if not name and flags.has_streams and flags.last_audio_codec:
        if not any(plain in flags.last_audio_codec for plain in PLAIN_AUDIO_CODECS):
            logger.debug(f"Audio codec '{flags.last_audio_codec}' detected but no combined badge matches")
    return f"{name}.png" if name else None


# ---- layer plan ----------------------------------------------------------

BADGE_HEIGHT_RATIO = 0.065
CODEC_BADGE_HEIGHT_RATIO = 0.050


class Slot(str, Enum):
    TOP_LEFT = "top_left"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"


@dataclass(frozen=True)
class GradientLayer:
    pass


@dataclass(frozen=True)
class TitleLayer:
    text: str


@dataclass(frozen=True)
class BadgeLayer:
    asset: str
    slot: Slot
    height_ratio: float = BADGE_HEIGHT_RATIO


@dataclass(frozen=True)
class ScoreLayer:
    asset: str
    rating: float
    height_ratio: float = BADGE_HEIGHT_RATIO


@dataclass(frozen=True)
class BorderLayer:
    choice: BorderChoice


Layer = Union[GradientLayer, TitleLayer, BadgeLayer, ScoreLayer, BorderLayer]


def plan_layers(
    item: MediaItem,
    title_text: Optional[str] = None,
    show_status: Optional[str] = None,
    now: Optional[float] = None,
) -> List[Layer]:
    """
    Ordered layer list for one poster. Movies get resolution/edition/codec badges;
    shows and seasons skip them.
    """
    layers: List[Layer] = [GradientLayer(), TitleLayer(title_text or item.title)]

    if isinstance(item, Movie):
        media = item.primary_media
        resolution = resolution_badge(media)
        if resolution:
            layers.append(BadgeLayer(f"{assets.RESOLUTION_DIR}/{resolution}", Slot.TOP_LEFT))
        edition = edition_badge(item.title)
        if edition:
            layers.append(BadgeLayer(f"{assets.EDITION_DIR}/{edition}", Slot.TOP_LEFT))
        codec = codec_badge(media)
        if codec:
            layers.append(BadgeLayer(f"{assets.CODEC_DIR}/{codec}", Slot.BOTTOM_LEFT, CODEC_BADGE_HEIGHT_RATIO))

    if item.audience_rating is not None:
        layers.append(ScoreLayer(f"{assets.AUDIENCE_DIR}/{audience_badge(item.audience_rating)}", item.audience_rating))

    layers.append(BorderLayer(select_border(item, show_status, now)))
    return layers
