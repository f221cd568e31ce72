"""Ошибки кассового модуля, общие для всех сервисов."""

from __future__ import annotations


class CashDeskError(Exception):
    """Базовая ошибка кассы."""


class ValidationError(CashDeskError):
    """Входные данные некорректны (сумма, концепт, количество купюр)."""


class ConflictError(CashDeskError):
    """Нарушен инвариант: смена уже открыта, закрыта или изменилась во время закрытия."""


class NotFoundError(CashDeskError):
    """Смена не найдена, недоступна ресторану оператора или уже закрыта."""


__all__ = [
    "CashDeskError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
]
