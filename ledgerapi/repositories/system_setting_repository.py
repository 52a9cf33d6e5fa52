from typing import Any, Optional

from sqlalchemy.orm import Session

from ledgerapi.models.system_setting import SystemSetting as SystemSettingModel


class SystemSettingRepository:
    """system_settings 키-값 조회/저장"""

    def __init__(self, db: Session):
        self.db = db

    def get_value(self, key: str, default: Any = None) -> Any:
        setting = self.db.get(SystemSettingModel, key)
        if setting is None or setting.value is None:
            return default
        return setting.value

    def upsert(self, key: str, value: Any, description: Optional[str] = None) -> SystemSettingModel:
        setting = self.db.get(SystemSettingModel, key)
        if setting is None:
            setting = SystemSettingModel(key=key, value=value, description=description)
            self.db.add(setting)
        else:
            setting.value = value
            if description is not None:
                setting.description = description
        self.db.flush()
        return setting
