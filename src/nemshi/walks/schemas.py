"""Boundary models for walk and participation documents.

Walk documents are written by several app versions and carry the same
information under different field names (``dateTime`` / ``startTime`` /
``startAt``, ``joinedUserUids`` / ``joinedUids``, ...). Parsing resolves
the aliases once, here, so the handlers only see canonical fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from nemshi.coercion import coerce_number, first_present, first_truthy, sanitize_nullable_string
from nemshi.timeutils import parse_timestamp


class WalkStatus(StrEnum):
    STARTING = "starting"
    ACTIVE = "active"
    COMPLETED = "completed"


class ParticipationStatus(StrEnum):
    ACTIVELY_WALKING = "actively_walking"
    COMPLETED = "completed"
    COMPLETED_EARLY = "completed_early"


def _uid(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def _uid_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [uid for uid in value if isinstance(uid, str) and uid]


class WalkDocument(BaseModel):
    """``walks/{walkId}``."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    visibility: str = "open"
    status: str | None = None
    host_uid: str | None = None
    joined_user_uids: list[str] = Field(default_factory=list)
    hide_from_friends: bool = False
    cancelled: bool = False
    completed: bool = False
    share_code: str | None = None

    date_time: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    meeting_place_name: str | None = None
    distance_km: float = 0
    planned_duration_minutes: float | None = None
    estimated_duration_minutes: int | None = None
    cover_photo_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_aliases(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        visibility = data.get("visibility") or "open"
        status = data.get("status") or None
        share_code = data.get("shareCode")
        return {
            "title": sanitize_nullable_string(data.get("title"), 140),
            "visibility": str(visibility),
            "status": str(status) if status is not None else None,
            "host_uid": _uid(data.get("hostUid")),
            "joined_user_uids": _uid_list(data.get("joinedUserUids")) + _uid_list(data.get("joinedUids")),
            "hide_from_friends": data.get("hideFromFriends") is True,
            "cancelled": bool(data.get("cancelled")),
            "completed": bool(data.get("completed")),
            "share_code": None if share_code is None else str(share_code),
            "date_time": data.get("dateTime"),
            "started_at": data.get("startedAt"),
            "completed_at": data.get("completedAt"),
            "start_time": first_truthy(data, "dateTime", "startTime", "startedAt", "startAt"),
            "end_time": first_truthy(data, "completedAt", "endTime", "endsAt"),
            "meeting_place_name": sanitize_nullable_string(
                first_truthy(data, "meetingPlaceName", "meetingPointName", "meetingPlace"), 120
            ),
            "distance_km": coerce_number(first_present(data, "distanceKm", "distance", "lengthKm"), 0),
            "planned_duration_minutes": coerce_number(data.get("plannedDurationMinutes"), None),
            "estimated_duration_minutes": coerce_number(
                first_present(
                    data, "plannedDurationMinutes", "expectedDurationMinutes", "estimatedDurationMinutes"
                ),
                None,
                0,
            ),
            "cover_photo_url": sanitize_nullable_string(
                first_truthy(data, "coverPhotoUrl", "photoUrl", "heroImageUrl"), 2000
            ),
        }

    @field_validator("date_time", "started_at", "completed_at", "start_time", "end_time", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @classmethod
    def from_data(cls, data: Mapping[str, Any] | None) -> WalkDocument | None:
        return None if data is None else cls.model_validate(data)

    @property
    def is_private(self) -> bool:
        return self.visibility == "private"


class ParticipationDocument(BaseModel):
    """``users/{uid}/walks/{walkId}``: one user's participation in a walk."""

    model_config = ConfigDict(frozen=True)

    walk_id: str | None = None
    user_id: str | None = None
    status: str | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    actual_distance_km: float = 0

    @model_validator(mode="before")
    @classmethod
    def _resolve_fields(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        return {
            "walk_id": _uid(data.get("walkId")),
            "user_id": _uid(data.get("userId")),
            "status": data.get("status") if isinstance(data.get("status"), str) else None,
            "confirmed_at": data.get("confirmedAt"),
            "completed_at": data.get("completedAt"),
            "actual_distance_km": coerce_number(data.get("actualDistanceKm"), 0),
        }

    @field_validator("confirmed_at", "completed_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @classmethod
    def from_data(cls, data: Mapping[str, Any] | None) -> ParticipationDocument | None:
        return None if data is None else cls.model_validate(data)
