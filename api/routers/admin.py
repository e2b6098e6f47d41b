import logging
import os

from database import get_all_config, set_config
from fastapi import APIRouter, Depends, Header, HTTPException
from models import PopularityStrategy
from pydantic import BaseModel

logger = logging.getLogger(__name__)
router = APIRouter()

ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")


def require_admin(x_admin_token: str = Header(None)):
    if not ADMIN_TOKEN:
        raise HTTPException(500, "ADMIN_TOKEN not configured")
    if x_admin_token != ADMIN_TOKEN:
        raise HTTPException(403, "Invalid admin token")


class ConfigUpdate(BaseModel):
    default_popularity_strategy: str | None = None
    default_total_songs: int | None = None
    default_target_duration: float | None = None
    preview_track_limit: int | None = None


@router.get("/admin/config")
def get_admin_config(auth=Depends(require_admin)):
    values = get_all_config()
    return {
        "default_popularity_strategy": values["default_popularity_strategy"],
        "default_total_songs": int(float(values["default_total_songs"])),
        "default_target_duration": float(values["default_target_duration"]),
        "preview_track_limit": int(float(values["preview_track_limit"])),
    }


@router.post("/admin/config")
def update_admin_config(update: ConfigUpdate, auth=Depends(require_admin)):
    # Validate everything before writing anything
    if update.default_popularity_strategy is not None:
        allowed = [s.value for s in PopularityStrategy]
        if update.default_popularity_strategy not in allowed:
            raise HTTPException(400, f"default_popularity_strategy must be one of {', '.join(allowed)}")

    if update.default_total_songs is not None and not (1 <= update.default_total_songs <= 1000):
        raise HTTPException(400, "default_total_songs must be 1-1000")

    if update.default_target_duration is not None and not (1 <= update.default_target_duration <= 1440):
        raise HTTPException(400, "default_target_duration must be 1-1440 minutes")

    if update.preview_track_limit is not None and not (1 <= update.preview_track_limit <= 100):
        raise HTTPException(400, "preview_track_limit must be 1-100")

    for key, value in update.model_dump(exclude_none=True).items():
        set_config(key, value)
        logger.info(f"Config {key} set to: {value}")

    return {"ok": True}
