from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from listingsync.database import get_db
from listingsync.models import AppSetting
from listingsync.services.credentials import UPSTREAM_TOKEN_KEY

router = APIRouter()

# Runtime-editable keys; True marks secrets that are never echoed back in full
EDITABLE_SETTINGS = {
    UPSTREAM_TOKEN_KEY: True,
}


def mask_api_key(key: str | None) -> str | None:
    """Mask API key for display, showing only last 4 chars."""
    if not key or len(key) < 8:
        return None
    return f"{'*' * (len(key) - 4)}{key[-4:]}"


class SettingUpdate(BaseModel):
    value: Optional[str] = None


class SettingResponse(BaseModel):
    key: str
    value: Optional[str] = None
    is_set: bool


def _check_key(key: str) -> bool:
    if key not in EDITABLE_SETTINGS:
        raise HTTPException(status_code=404, detail=f"Unknown setting '{key}'")
    return EDITABLE_SETTINGS[key]


def _response(key: str, value: Optional[str], secret: bool) -> dict:
    return {
        "key": key,
        "value": mask_api_key(value) if secret else value,
        "is_set": bool(value),
    }


@router.get("/{key}", response_model=SettingResponse)
async def get_setting(key: str, db: Session = Depends(get_db)):
    secret = _check_key(key)
    return _response(key, AppSetting.get_value(db, key), secret)


@router.put("/{key}", response_model=SettingResponse)
async def update_setting(key: str, update: SettingUpdate, db: Session = Depends(get_db)):
    secret = _check_key(key)
    value = update.value.strip() if update.value else None
    AppSetting.set_value(db, key, value or None)
    return _response(key, value, secret)
