"""Private walk invite redemption."""

from __future__ import annotations

import structlog

from nemshi.store import DocumentStore
from nemshi.store import paths

logger = structlog.get_logger()


class InviteError(Exception):
    """Redemption refused; carries the status code and a machine-readable code."""

    status_code = 400
    code = "invalid-argument"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInviteArgument(InviteError):
    pass


class WalkNotFound(InviteError):
    status_code = 404
    code = "not-found"


class WalkNotPrivate(InviteError):
    status_code = 400
    code = "failed-precondition"


class InvalidShareCode(InviteError):
    status_code = 403
    code = "permission-denied"


def normalize_share_code(value: object) -> str:
    return ("" if value is None else str(value)).strip().upper()


async def redeem_walk_invite(store: DocumentStore, uid: str, walk_id: str, share_code: object) -> dict[str, bool]:
    """Grant ``uid`` read access to a private walk whose share code they know."""
    walk_id = (walk_id or "").strip()
    code = normalize_share_code(share_code)
    if not walk_id:
        raise InvalidInviteArgument("walkId is required.")
    if not code:
        raise InvalidInviteArgument("shareCode is required.")

    snapshot = await store.get(paths.walk(walk_id))
    if not snapshot.exists:
        raise WalkNotFound("Walk not found.")

    walk = snapshot.to_dict()
    if walk.get("visibility") != "private":
        raise WalkNotPrivate("This walk is not private.")

    stored = normalize_share_code(walk.get("shareCode"))
    if not stored or stored != code:
        logger.info("walk_invite_rejected", walk_id=walk_id, user_id=uid)
        raise InvalidShareCode("Invalid invite code.")

    await store.set(
        paths.walk_allowed(walk_id, uid),
        {"uid": uid, "walkId": walk_id, "redeemedAt": store.now()},
        merge=True,
    )
    logger.info("walk_invite_redeemed", walk_id=walk_id, user_id=uid)
    return {"ok": True}
