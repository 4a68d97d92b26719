"""Friend-profile projections and the source documents they are built from."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from nemshi.coercion import coerce_number, first_present, first_truthy, sanitize_nullable_string
from nemshi.schemas import CamelModel
from nemshi.timeutils import parse_timestamp

DEFAULT_DISPLAY_NAME = "Walker"
DEFAULT_WALK_TITLE = "Walk"


class WalkRole(StrEnum):
    HOST = "host"
    PARTICIPANT = "participant"


class WalkCategory(StrEnum):
    UPCOMING = "upcoming"
    PAST = "past"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


# --- Source documents ---


class UserDocument(BaseModel):
    """The profile fields of ``users/{uid}`` that are shared with friends."""

    model_config = ConfigDict(frozen=True)

    display_name: str | None = None
    bio: str | None = None
    photo_url: str | None = None
    host_rating: Any = None
    last_active_at: Any = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_aliases(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        return {
            "display_name": sanitize_nullable_string(data.get("displayName"), 120),
            "bio": sanitize_nullable_string(first_truthy(data, "bio", "about"), 280),
            "photo_url": sanitize_nullable_string(first_truthy(data, "photoUrl", "photoURL"), 2000),
            "host_rating": data.get("hostRating"),
            "last_active_at": data.get("lastActiveAt"),
        }


class StatsDocument(BaseModel):
    """Profile view of ``users/{uid}/stats/walkStats``.

    Older documents use different counter names; each total resolves its
    aliases in order and defaults to 0.
    """

    model_config = ConfigDict(frozen=True)

    host_rating: Any = None
    total_walks_hosted: int = 0
    total_walks_joined: int = 0
    total_distance_km: float = 0
    total_minutes: int = 0
    last_activity: Any = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_aliases(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        minutes = first_present(data, "totalMinutes", "totalDurationMinutes")
        if minutes is None:
            seconds = coerce_number(data.get("totalDuration"), None)
            minutes = seconds / 60 if seconds is not None else 0
        return {
            "host_rating": first_present(data, "hostRating", "averageHostRating"),
            "total_walks_hosted": coerce_number(
                first_present(data, "totalWalksHosted", "hostedWalks", default=0), 0, 0
            ),
            "total_walks_joined": coerce_number(
                first_present(data, "totalWalksJoined", "joinedWalks", "totalWalks", default=0), 0, 0
            ),
            "total_distance_km": coerce_number(
                first_present(data, "totalDistanceKm", "totalDistance", default=0), 0
            ),
            "total_minutes": coerce_number(minutes, 0, 0),
            "last_activity": first_truthy(data, "lastCompletedAt", "lastWalkAt", "lastWalkDate"),
        }


# --- Projections ---


class FriendProfile(CamelModel):
    """``friend_profiles/{uid}``."""

    uid: str
    display_name: str = DEFAULT_DISPLAY_NAME
    photo_url: str | None = None
    bio: str | None = None
    host_rating: float | None = None
    total_walks_hosted: int = 0
    total_walks_joined: int = 0
    total_distance_km: float = 0
    total_minutes: int = 0
    last_active_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("last_active_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)


class WalkSummary(CamelModel):
    """``friend_profiles/{uid}/walk_summaries/{walkId}``."""

    walk_id: str
    role: WalkRole
    title: str = DEFAULT_WALK_TITLE
    visibility: str = "open"
    status: str | None = None
    meeting_place_name: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    category: WalkCategory = WalkCategory.UNKNOWN
    distance_km: float = 0
    estimated_duration_minutes: int | None = None
    cover_photo_url: str | None = None
    host_uid: str | None = None
    updated_at: datetime | None = None
