from datetime import time
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Scope words used in balance/list callback data
RESERVED_NAMES = ("total", "all")


class LedgerConfig(BaseModel):
    """Participants and identities the bot works with."""

    model_config = ConfigDict(frozen=True)

    participants: list[str]
    split_label: str = "Umumiy"
    allowed_users: list[str] = []
    admin_id: str = ""
    restricted_users: dict[str, str] = {}
    mode_step: bool = True
    currency: str = "₩"
    thousands_separator: str = ","
    timezone: str = "Asia/Seoul"
    report_path: Path = Path("ledger_report.txt")
    clear_preview_limit: int = 4

    @model_validator(mode="after")
    def _check_participants(self):
        if not self.participants:
            raise ValueError("at least one participant is required")
        if len(set(self.participants)) != len(self.participants):
            raise ValueError("participant names must be unique")
        for name in self.participants:
            if name == self.split_label or name.lower() in RESERVED_NAMES:
                raise ValueError(f"{name!r} cannot be used as a participant name")
        for user_id, name in self.restricted_users.items():
            if name not in self.participants:
                raise ValueError(f"restricted user {user_id} maps to unknown participant {name!r}")
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def is_allowed(self, user_id: str) -> bool:
        return user_id in self.allowed_users

    def is_admin(self, user_id: str) -> bool:
        return bool(self.admin_id) and user_id == self.admin_id

    def is_restricted(self, user_id: str) -> bool:
        return user_id in self.restricted_users

    def others(self, user_id: str) -> list[str]:
        """Allow-listed identities other than ``user_id``."""
        return [uid for uid in self.allowed_users if uid != user_id]

    def approvers(self, user_id: str) -> list[str]:
        """Identities that may approve a clear requested by ``user_id``."""
        return [uid for uid in self.others(user_id) if not self.is_restricted(uid)]

    def recipients(self) -> list[str]:
        """Allow-list plus the administrator, without duplicates."""
        result = list(self.allowed_users)
        if self.admin_id and self.admin_id not in result:
            result.append(self.admin_id)
        return result


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    telegram_bot_token: str = ""
    db_path: str = "ledger.json"
    admin_id: str = ""
    allowed_users: list[str] = []
    participants: list[str] = ["Sheyx", "Polvon"]
    split_label: str = "Umumiy"
    mode_step: bool = True
    restricted_users: dict[str, str] = {}
    currency: str = "₩"
    thousands_separator: str = ","
    timezone: str = "Asia/Seoul"
    report_days: list[int] = [1, 11, 21]
    report_time: time = time(9, 0)
    report_path: str = "ledger_report.txt"
    clear_preview_limit: int = 4
    log_level: str = "INFO"

    @field_validator("allowed_users", mode="before")
    @classmethod
    def _ids_as_strings(cls, value):
        # Telegram ids are often written as bare numbers
        if isinstance(value, list):
            return [str(v) for v in value]
        return value

    def ledger_config(self) -> LedgerConfig:
        return LedgerConfig(
            participants=self.participants,
            split_label=self.split_label,
            allowed_users=self.allowed_users,
            admin_id=self.admin_id,
            restricted_users=self.restricted_users,
            mode_step=self.mode_step,
            currency=self.currency,
            thousands_separator=self.thousands_separator,
            timezone=self.timezone,
            report_path=Path(self.report_path),
            clear_preview_limit=self.clear_preview_limit,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
