"""
Bot setting repository.
"""

from sqlalchemy.orm import Session

from talkbridge.db.repositories.base import BaseRepository
from talkbridge.models.bot_settings import BotSettings
from talkbridge.models.db import BotSetting


class SettingRepository(BaseRepository[BotSetting]):
    """Repository for the runtime-editable key/value settings."""

    def __init__(self, session: Session):
        super().__init__(BotSetting, session)

    def get_all_values(self) -> dict[str, str]:
        """Get every stored setting as a plain mapping."""
        return {row.key: row.value for row in self.session.query(BotSetting).all()}

    def set_value(self, key: str, value: str) -> BotSetting:
        """
        Insert or update a setting.

        Args:
            key: Setting key
            value: Raw string value

        Returns:
            The stored BotSetting row
        """
        existing = self.get(key)
        if existing:
            return self.update(existing, value=value)
        return self.create(key=key, value=value)

    def load_snapshot(self) -> BotSettings:
        """Read all settings once and return the typed snapshot."""
        return BotSettings.from_mapping(self.get_all_values())
