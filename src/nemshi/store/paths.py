"""Document paths for the persisted layout.

Document paths alternate collection and document ids
(``users/{uid}/stats/walkStats``); collection paths have an odd number of
segments (``friend_profiles/{uid}/walk_summaries``).
"""

from __future__ import annotations

from nemshi.store.errors import InvalidPathError

USERS = "users"
WALKS = "walks"
FRIEND_PROFILES = "friend_profiles"
WALK_SUMMARIES = "walk_summaries"
STATS = "stats"
BADGES = "badges"
FCM_TOKENS = "fcmTokens"
COMPLETIONS = "completions"
ALLOWED = "allowed"
WALK_STATS_DOC_ID = "walkStats"


def _segments(path: str) -> list[str]:
    parts = path.strip("/").split("/")
    if any(not p for p in parts):
        raise InvalidPathError(f"Empty segment in path: {path!r}")
    return parts


def join(*segments: str) -> str:
    """Join path segments, rejecting empty ones and embedded slashes."""
    for segment in segments:
        if not segment or "/" in segment:
            raise InvalidPathError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def split_document_path(path: str) -> tuple[str, str]:
    """Return (collection_path, document_id) for a document path."""
    parts = _segments(path)
    if len(parts) % 2:
        raise InvalidPathError(f"Not a document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1]


def validate_collection_path(path: str) -> str:
    parts = _segments(path)
    if len(parts) % 2 == 0:
        raise InvalidPathError(f"Not a collection path: {path!r}")
    return "/".join(parts)


def collection_id(collection_path: str) -> str:
    """Last segment of a collection path (``users/u1/walks`` -> ``walks``)."""
    return collection_path.rsplit("/", 1)[-1]


# --- users ---


def user(uid: str) -> str:
    return join(USERS, uid)


def walk_stats(uid: str) -> str:
    return join(USERS, uid, STATS, WALK_STATS_DOC_ID)


def badges(uid: str) -> str:
    return join(USERS, uid, BADGES)


def badge(uid: str, badge_id: str) -> str:
    return join(USERS, uid, BADGES, badge_id)


def fcm_tokens(uid: str) -> str:
    return join(USERS, uid, FCM_TOKENS)


def fcm_token(uid: str, token: str) -> str:
    return join(USERS, uid, FCM_TOKENS, token)


def participation(uid: str, walk_id: str) -> str:
    return join(USERS, uid, WALKS, walk_id)


def completion_marker(uid: str, walk_id: str) -> str:
    return join(USERS, uid, COMPLETIONS, walk_id)


# --- walks ---


def walk(walk_id: str) -> str:
    return join(WALKS, walk_id)


def walk_allowed(walk_id: str, uid: str) -> str:
    return join(WALKS, walk_id, ALLOWED, uid)


# --- friend profiles ---


def friend_profile(uid: str) -> str:
    return join(FRIEND_PROFILES, uid)


def walk_summaries(uid: str) -> str:
    return join(FRIEND_PROFILES, uid, WALK_SUMMARIES)


def walk_summary(uid: str, walk_id: str) -> str:
    return join(FRIEND_PROFILES, uid, WALK_SUMMARIES, walk_id)
