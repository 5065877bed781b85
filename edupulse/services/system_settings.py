from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import SystemSetting


def list_settings(db: Session, *, category: str | None = None) -> list[SystemSetting]:
    query = db.query(SystemSetting)
    if category:
        query = query.filter(SystemSetting.category == category.strip().lower())
    return query.order_by(SystemSetting.category, SystemSetting.key).all()


def get_setting(db: Session, key: str) -> SystemSetting:
    setting = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if setting is None:
        raise NotFoundError("Setting")
    return setting


def upsert_setting(db: Session, *, key: str, value: str, category: str = "general") -> SystemSetting:
    setting = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if setting is None:
        setting = SystemSetting(key=key)
        db.add(setting)
    setting.value = value
    setting.category = category.strip().lower()
    db.commit()
    db.refresh(setting)
    return setting


def delete_setting(db: Session, key: str) -> None:
    setting = get_setting(db, key)
    db.delete(setting)
    db.commit()
