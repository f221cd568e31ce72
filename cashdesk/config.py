"""Настройки проекта и загрузка переменных окружения."""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
import os
from typing import List

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent
ENV_FILE = ROOT_DIR.parent / ".env"

load_dotenv(ENV_FILE)

# Допустимые области уникальности открытой смены
SHIFT_SCOPES = ("operator", "register", "restaurant")


def _as_bool(value: str | None) -> bool:
    """Приводит строковые значения окружения к bool."""
    return str(value).lower() in {"1", "true", "yes", "on"}


def _as_list(value: str | None) -> List[str]:
    """Преобразует строку с запятыми в список значений."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_scope(value: str | None) -> tuple[str, ...]:
    """Разбирает SHIFT_UNIQUE_SCOPE и проверяет допустимые значения."""
    scope = tuple(item.lower() for item in _as_list(value))
    unknown = [item for item in scope if item not in SHIFT_SCOPES]
    if unknown:
        raise ValueError(f"Неизвестная область уникальности смены: {', '.join(unknown)}")
    return scope or ("operator",)


@dataclass(frozen=True)
class Settings:
    database_url: str
    debug: bool
    cash_tolerance: Decimal
    shift_scope: tuple[str, ...]
    timezone: str
    history_page_size: int
    stats_sample_size: int


settings = Settings(
    database_url=os.getenv(
        "DATABASE_URL",
        "postgresql+psycopg://postgres:postgres@db:5432/cashdesk"
    ),
    debug=_as_bool(os.getenv("CASHDESK_DEBUG", "False")),
    cash_tolerance=Decimal(os.getenv("CASH_TOLERANCE", "5.00")),
    shift_scope=_as_scope(os.getenv("SHIFT_UNIQUE_SCOPE", "operator,register")),
    timezone=os.getenv("CASHDESK_TZ", "America/Lima"),
    history_page_size=int(os.getenv("HISTORY_PAGE_SIZE", "10")),
    stats_sample_size=int(os.getenv("STATS_SAMPLE_SIZE", "20")),
)
