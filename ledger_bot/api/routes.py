from fastapi import APIRouter, HTTPException
from loguru import logger

from ledger_bot.core.report import compute_balances
from ledger_bot.deps import entries, ledger
from ledger_bot.errors import StoreFailure
from ledger_bot.models.schemas import Entry

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/entries", response_model=list[Entry])
async def list_entries(name: str | None = None):
    try:
        return entries.find(name=name)
    except StoreFailure as e:
        logger.error("Listing entries failed: {}", e)
        raise HTTPException(status_code=503, detail="Store unavailable")


@router.get("/entries/{entry_id}", response_model=Entry)
async def get_entry(entry_id: str):
    entry = entries.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry


@router.get("/balances", response_model=dict[str, int])
async def balances():
    return compute_balances(entries.find(), ledger.participants)
