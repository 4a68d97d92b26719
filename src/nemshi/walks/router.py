"""Walk endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from nemshi.auth.dependencies import get_current_uid
from nemshi.container import get_store
from nemshi.store import DocumentStore
from nemshi.walks.invites import redeem_walk_invite

router = APIRouter(prefix="/api/v1/walks", tags=["Walks"])


class RedeemInviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    share_code: str | None = Field(default=None, alias="shareCode")


class RedeemInviteResponse(BaseModel):
    ok: bool


@router.post("/{walk_id}/redeem-invite", response_model=RedeemInviteResponse)
async def redeem_invite(
    walk_id: str,
    body: RedeemInviteRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),  # noqa: B008
) -> RedeemInviteResponse:
    """Redeem a private walk's share code for read access."""
    result = await redeem_walk_invite(store, uid, walk_id, body.share_code)
    return RedeemInviteResponse(ok=result["ok"])
