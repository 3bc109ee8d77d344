from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from creditanchor import crypto
from creditanchor.anchor import derive_key, parse_anchor_key
from creditanchor.errors import InvalidParameters
from creditanchor.models import AnchorRecord

from . import models
from .db import get_db, init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize database schema at startup.
    init_db()
    yield


app = FastAPI(title="CreditAnchor Registry", version="0.1", lifespan=lifespan)


class AnchorIn(BaseModel):
    cid: str
    pieceCid: str = ""
    dealId: int = 0
    encHash: str


class AnchorOut(AnchorIn):
    key: str
    updatedAt: str | None = None


def _entry_to_dict(entry: models.AnchorEntry) -> dict:
    return {
        "key": entry.key,
        "cid": entry.cid,
        "pieceCid": entry.piece_cid,
        "dealId": int(entry.deal_id),
        "encHash": entry.enc_hash,
        "updatedAt": entry.updated_at,
    }


def _normalize_key(key: str) -> str:
    try:
        return crypto.hexe(parse_anchor_key(key))
    except InvalidParameters as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/anchors/{key}", response_model=AnchorOut)
def set_anchor(key: str, payload: AnchorIn, db: Session = Depends(get_db)):
    norm_key = _normalize_key(key)
    try:
        record = AnchorRecord.from_dict(payload.model_dump())
    except InvalidParameters as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    entry = db.get(models.AnchorEntry, norm_key) or models.AnchorEntry(key=norm_key)
    entry.cid = record.locator
    entry.piece_cid = record.piece_locator
    entry.deal_id = str(record.deal_reference)
    entry.enc_hash = crypto.hexe(record.content_hash)
    entry.updated_at = datetime.now(timezone.utc).isoformat()
    db.add(entry)
    db.commit()
    return _entry_to_dict(entry)


@app.get("/anchors/{key}", response_model=AnchorOut)
def get_anchor(key: str, db: Session = Depends(get_db)):
    entry = db.get(models.AnchorEntry, _normalize_key(key))
    if not entry:
        raise HTTPException(status_code=404, detail="Anchor not found")
    return _entry_to_dict(entry)


@app.get("/derive-key")
def derive_anchor_key(
    nft: str = Query(..., description="Token contract address"),
    token_id: str = Query(..., description="Token id, decimal or 0x hex"),
):
    try:
        key = derive_key(nft, token_id)
    except InvalidParameters as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"key": crypto.hexe(key)}


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}
