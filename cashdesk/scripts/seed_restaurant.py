"""Создаёт ресторан, администратора, кассу и допуск из переменных окружения.

SEED_RESTAURANT_NAME, SEED_ADMIN_EMAIL, SEED_REGISTER_NAME; допуск берётся из CASH_TOLERANCE.
"""

import logging
import os

from cashdesk.config import settings
from cashdesk.core.db import db_session
from cashdesk.core.models import Register, Restaurant, User, UserRole
from cashdesk.services.tolerance import set_tolerance

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s:cashdesk:%(levelname)s:%(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    admin_email = os.getenv("SEED_ADMIN_EMAIL")
    if not admin_email:
        logger.error("SEED_ADMIN_EMAIL не указан.")
        return
    restaurant_name = os.getenv("SEED_RESTAURANT_NAME", "Restaurante")
    register_name = os.getenv("SEED_REGISTER_NAME", "Caja 1")

    with db_session() as session:
        user = (
            session.query(User)
            .filter(User.email == admin_email)
            .one_or_none()
        )
        if user:
            user.role = UserRole.ADMIN
            user.is_active = True
            session.flush()
            logger.info("Админ уже существует: %s", user.email)
            return

        restaurant = Restaurant(name=restaurant_name)
        session.add(restaurant)
        session.flush()

        session.add(Register(restaurant_id=restaurant.id, name=register_name))
        user = User(
            restaurant_id=restaurant.id,
            email=admin_email,
            role=UserRole.ADMIN,
            is_active=True,
            name="Admin",
        )
        session.add(user)
        session.flush()
        set_tolerance(restaurant.id, settings.cash_tolerance, session=session)
        logger.info("Ресторан %s создан, админ: %s", restaurant.name, user.email)


if __name__ == "__main__":
    main()
