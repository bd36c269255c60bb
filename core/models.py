from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

PROCESSED_LABEL = "Rustizarr"

SECONDS_PER_DAY = 86400


def _as_list(value: Any) -> List[Any]:
    """Plex emits single-element collections either as a list or as a bare object."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _optional_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass
class MediaVariant:
    """
    One entry of a movie's ``Media`` list.
    ``parts`` keeps the raw ``Part`` payload untouched: it may be a list or a single object,
    and so may the ``Stream`` collection nested inside each part.
    """
    video_resolution: Optional[str] = None   # "4k", "1080", "720", ...
    audio_codec: Optional[str] = None        # "truehd", "eac3", "aac", ...
    parts: Any = None

    @classmethod
    def from_plex(cls, data: Dict[str, Any]) -> "MediaVariant":
        return cls(
            video_resolution=data.get("videoResolution"),
            audio_codec=data.get("audioCodec"),
            parts=data.get("Part"),
        )

    def to_plex(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.video_resolution is not None:
            payload["videoResolution"] = self.video_resolution
        if self.audio_codec is not None:
            payload["audioCodec"] = self.audio_codec
        if self.parts is not None:
            payload["Part"] = self.parts
        return payload


@dataclass
class MediaItem:
    """
    Common shape of every catalog entry (movie, show or season) read from Plex.
    ``labels`` is the raw ``Label`` payload: a list of ``{"tag": ...}`` objects or a single one.
    """
    rating_key: str                          # Plex ratingKey
    title: str
    year: Optional[int] = None
    audience_rating: Optional[float] = None  # 0.0 - 10.0
    added_at: Optional[int] = None           # seconds since epoch
    labels: Any = None
    guids: List[str] = field(default_factory=list)   # e.g. ["tmdb://438631", "imdb://tt1160419"]

    media_type: ClassVar[str] = "item"
    freshness_days: ClassVar[int] = 0

    def label_tags(self) -> List[str]:
        tags = []
        for entry in _as_list(self.labels):
            if isinstance(entry, dict) and isinstance(entry.get("tag"), str):
                tags.append(entry["tag"])
        return tags

    def has_label(self, tag: str) -> bool:
        target = tag.lower()
        return any(existing.lower() == target for existing in self.label_tags())

    @property
    def is_processed(self) -> bool:
        return self.has_label(PROCESSED_LABEL)

    def days_since_added(self, now: Optional[float] = None) -> Optional[int]:
        if self.added_at is None:
            return None
        now = time.time() if now is None else now
        return int((now - self.added_at) // SECONDS_PER_DAY)

    def is_recently_added(self, now: Optional[float] = None) -> bool:
        days = self.days_since_added(now)
        return days is not None and days <= self.freshness_days

    @staticmethod
    def _common_fields(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "rating_key": str(data["ratingKey"]),
            "title": data["title"],
            "year": _optional_int(data.get("year")),
            "audience_rating": _optional_float(data.get("audienceRating")),
            "added_at": _optional_int(data.get("addedAt")),
            "labels": data.get("Label"),
            "guids": [
                g["id"] for g in _as_list(data.get("Guid"))
                if isinstance(g, dict) and isinstance(g.get("id"), str)
            ],
        }

    def to_plex(self) -> Dict[str, Any]:
        """Serialise back into the Plex JSON shape consumed by the web frontend."""
        payload: Dict[str, Any] = {
            "ratingKey": self.rating_key,
            "title": self.title,
            "type": self.media_type,
        }
        if self.year is not None:
            payload["year"] = self.year
        if self.audience_rating is not None:
            payload["audienceRating"] = self.audience_rating
        if self.added_at is not None:
            payload["addedAt"] = self.added_at
        if self.labels is not None:
            payload["Label"] = self.labels
        if self.guids:
            payload["Guid"] = [{"id": g} for g in self.guids]
        return payload


@dataclass
class Movie(MediaItem):
    guid_str: Optional[str] = None           # legacy agent guid, "com.plexapp.agents.themoviedb://603?lang=en"
    media: List[MediaVariant] = field(default_factory=list)

    media_type: ClassVar[str] = "movie"
    freshness_days: ClassVar[int] = 7

    @classmethod
    def from_plex(cls, data: Dict[str, Any]) -> "Movie":
        return cls(
            **cls._common_fields(data),
            guid_str=data.get("guid"),
            media=[MediaVariant.from_plex(m) for m in _as_list(data.get("Media")) if isinstance(m, dict)],
        )

    @property
    def primary_media(self) -> Optional[MediaVariant]:
        return self.media[0] if self.media else None

    def to_plex(self) -> Dict[str, Any]:
        payload = super().to_plex()
        if self.guid_str is not None:
            payload["guid"] = self.guid_str
        if self.media:
            payload["Media"] = [m.to_plex() for m in self.media]
        return payload


@dataclass
class Show(MediaItem):
    media_type: ClassVar[str] = "show"
    freshness_days: ClassVar[int] = 30

    @classmethod
    def from_plex(cls, data: Dict[str, Any]) -> "Show":
        return cls(**cls._common_fields(data))


@dataclass
class Season(MediaItem):
    season_number: int = 0
    show_rating_key: str = ""
    show_title: str = ""

    media_type: ClassVar[str] = "season"
    freshness_days: ClassVar[int] = 30

    @classmethod
    def from_plex(cls, data: Dict[str, Any]) -> "Season":
        return cls(
            **cls._common_fields(data),
            season_number=int(data.get("index", 0)),
            show_rating_key=str(data.get("parentRatingKey", "")),
            show_title=data.get("parentTitle", ""),
        )

    @property
    def display_title(self) -> str:
        return f"{self.show_title} - Saison {self.season_number}"

    def to_plex(self) -> Dict[str, Any]:
        payload = super().to_plex()
        payload.update(
            index=self.season_number,
            parentRatingKey=self.show_rating_key,
            parentTitle=self.show_title,
        )
        return payload


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"       # already carries the processed label
    NO_IMAGE = "no_image"     # no external id or no poster upstream
    FAILED = "failed"


@dataclass
class Outcome:
    """Result of running the poster pipeline once for a single item."""
    status: OutcomeStatus
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def already_processed(cls) -> "Outcome":
        return cls(OutcomeStatus.SKIPPED, "⏭️ already processed")

    @classmethod
    def no_image(cls, message: str = "no image found") -> "Outcome":
        return cls(OutcomeStatus.NO_IMAGE, message)

    @classmethod
    def failed(cls, message: str) -> "Outcome":
        return cls(OutcomeStatus.FAILED, message)

    def __str__(self) -> str:
        return self.message or self.status.value


@dataclass
class PosterTask:
    """
    Represents a unit of work: generate/upload a poster for a single media item.
    """
    item: MediaItem
    tmdb_id: Optional[str] = None
    chosen_url: Optional[str] = None          # TMDB image URL
    source_type: Optional[str] = None         # "textless" or "standard"
    show_status: Optional[str] = None         # TMDB status of the show (shows and seasons)
    title_text: str = ""                      # text drawn on the banner
    status: str = "pending"                   # pending, selected, not_found, rendered, uploaded
