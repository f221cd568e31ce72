"""Допуск расхождения кассы: настройка ресторана с дефолтом из окружения."""

from __future__ import annotations

import logging

from cashdesk.config import settings
from cashdesk.core.db import db_session
from cashdesk.core.errors import ValidationError
from cashdesk.core.models import RestaurantSetting
from cashdesk.utils.money import Money

logger = logging.getLogger(__name__)

TOLERANCE_KEY = "cash_tolerance"


def get_tolerance(restaurant_id: int, session=None) -> Money:
    """Читает допуск для ресторана при каждом вызове (без кеша).

    :param restaurant_id: ресторан оператора
    :return: неотрицательный Money
    :raises ValidationError: если значение в настройках некорректно
    """
    with db_session(session=session) as local:
        raw = (
            local.query(RestaurantSetting.value)
            .filter(
                RestaurantSetting.restaurant_id == restaurant_id,
                RestaurantSetting.key == TOLERANCE_KEY,
            )
            .scalar()
        )
    if raw is None:
        logger.debug("tolerance: restaurant=%s uses default %s", restaurant_id, settings.cash_tolerance)
        raw = settings.cash_tolerance
    tolerance = Money.of(raw)
    if tolerance.is_negative():
        raise ValidationError("Допуск расхождения не может быть отрицательным.")
    return tolerance


def set_tolerance(restaurant_id: int, value, session=None) -> Money:
    """Создаёт или обновляет допуск ресторана.

    :raises ValidationError: если значение отрицательное или не число
    """
    tolerance = Money.of(value)
    if tolerance.is_negative():
        raise ValidationError("Допуск расхождения не может быть отрицательным.")
    with db_session(session=session) as local:
        row = (
            local.query(RestaurantSetting)
            .filter(
                RestaurantSetting.restaurant_id == restaurant_id,
                RestaurantSetting.key == TOLERANCE_KEY,
            )
            .one_or_none()
        )
        if row:
            row.value = str(tolerance)
        else:
            local.add(
                RestaurantSetting(
                    restaurant_id=restaurant_id,
                    key=TOLERANCE_KEY,
                    value=str(tolerance),
                )
            )
        local.flush()
    logger.info("tolerance: restaurant=%s set to %s", restaurant_id, tolerance)
    return tolerance
