from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from etf_tracker.api.deps import get_tracker
from etf_tracker.services.tracker import StatusMessage, WatchlistTracker

router = APIRouter(prefix="/api", tags=["watchlist"])


class AddInstrumentRequest(BaseModel):
    symbol: str


class SignInRequest(BaseModel):
    token: Optional[str] = None


class StatusResponse(BaseModel):
    text: str
    type: str


class OperationResponse(BaseModel):
    status: StatusResponse
    view: dict[str, Any]


def _respond(tracker: WatchlistTracker, status: StatusMessage, rejected_code: int | None = None) -> dict[str, Any]:
    if rejected_code is not None and status.reason is not None:
        raise HTTPException(status_code=rejected_code, detail=status.text)
    return {"status": {"text": status.text, "type": status.type}, "view": tracker.view()}


@router.get("/watchlist")
def get_watchlist(tracker: WatchlistTracker = Depends(get_tracker)) -> dict[str, Any]:
    return tracker.view()


@router.post("/watchlist/symbols", response_model=OperationResponse)
async def add_instrument(payload: AddInstrumentRequest, tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.add_instrument(payload.symbol), rejected_code=400)


@router.delete("/watchlist/symbols/{entry_id}", response_model=OperationResponse)
async def remove_instrument(entry_id: str, tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.remove_instrument(entry_id), rejected_code=404)


@router.post("/watchlist/refresh", response_model=OperationResponse)
async def refresh_all(tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.refresh_all())


@router.post("/watchlist/migration/accept", response_model=OperationResponse)
async def accept_migration(tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.accept_migration())


@router.post("/watchlist/migration/decline", response_model=OperationResponse)
async def decline_migration(tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.decline_migration())


@router.post("/session/sign-in", response_model=OperationResponse)
async def sign_in(payload: SignInRequest, tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.sign_in(payload.token), rejected_code=401)


@router.post("/session/sign-out", response_model=OperationResponse)
async def sign_out(tracker: WatchlistTracker = Depends(get_tracker)):
    return _respond(tracker, await tracker.sign_out())
