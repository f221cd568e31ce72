"""Базовые фикстуры для тестов кассовых сервисов."""

import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Добавляем корень проекта в PYTHONPATH для pytest внутри контейнера
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import cashdesk.core.db  # noqa: F401  PRAGMA foreign_keys для SQLite
from cashdesk.core.models import Base, Register, Restaurant, User, UserRole


@pytest.fixture(scope="function")
def engine():
    """Тестовый SQLite engine (in-memory, общий для всех сессий в тесте)."""
    url = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    eng = create_engine(
        url,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session(engine):
    """Сессия с чистой схемой перед каждым тестом."""
    with engine.begin() as conn:
        Base.metadata.drop_all(bind=conn)
        Base.metadata.create_all(bind=conn)

    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess = SessionLocal()

    # Подменяем глобальные ссылки на engine/SessionLocal
    import cashdesk.core.db as db

    db.SessionLocal = SessionLocal
    db.engine = engine

    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture()
def restaurant(session):
    item = Restaurant(name="Pollería Central")
    session.add(item)
    session.flush()
    return item


@pytest.fixture()
def other_restaurant(session):
    item = Restaurant(name="Cevichería Norte")
    session.add(item)
    session.flush()
    return item


@pytest.fixture()
def cashier(session, restaurant):
    """Активный кассир ресторана."""
    user = User(
        restaurant_id=restaurant.id,
        email="cajero@polleria.pe",
        name="Cajero",
        role=UserRole.CASHIER,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


@pytest.fixture()
def second_cashier(session, restaurant):
    user = User(
        restaurant_id=restaurant.id,
        email="cajera@polleria.pe",
        name="Cajera",
        role=UserRole.CASHIER,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


@pytest.fixture()
def outsider(session, other_restaurant):
    """Оператор другого ресторана."""
    user = User(
        restaurant_id=other_restaurant.id,
        email="admin@ceviche.pe",
        role=UserRole.ADMIN,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


@pytest.fixture()
def register(session, restaurant):
    item = Register(restaurant_id=restaurant.id, name="Caja 1")
    session.add(item)
    session.flush()
    return item
