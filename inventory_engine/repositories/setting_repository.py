from typing import Any, Optional

from sqlalchemy.orm import Session

from inventory_engine.models.setting import Setting


class SettingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, group: str, key: str) -> Optional[Setting]:
        return (
            self.db.query(Setting)
            .filter(Setting.group == group, Setting.key == key)
            .first()
        )

    def set(self, group: str, key: str, value: Any) -> Setting:
        setting = self.get(group, key)
        if setting is None:
            setting = Setting(group=group, key=key, value=value)
            self.db.add(setting)
        else:
            setting.value = value
        self.db.flush()
        return setting
