from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_admin
from ..models import User
from ..responses import ApiResponse, ok
from ..schemas.events import SettingOut, SettingUpsert
from ..services import system_settings as settings_service

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("", response_model=ApiResponse[list[SettingOut]])
def list_settings(
    category: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return ok([SettingOut.model_validate(setting) for setting in settings_service.list_settings(db, category=category)])


@router.get("/{key}", response_model=ApiResponse[SettingOut])
def get_setting(key: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(SettingOut.model_validate(settings_service.get_setting(db, key)))


@router.put("/{key}", response_model=ApiResponse[SettingOut])
def upsert_setting(
    key: str,
    payload: SettingUpsert,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    setting = settings_service.upsert_setting(db, key=key, value=payload.value, category=payload.category)
    return ok(SettingOut.model_validate(setting), "Setting saved")


@router.delete("/{key}", response_model=ApiResponse[None])
def delete_setting(key: str, db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    settings_service.delete_setting(db, key)
    return ok(message="Setting deleted")
