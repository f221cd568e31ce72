from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# корень репозитория попадает в sys.path через prepend_sys_path в alembic.ini
from cashdesk.config import settings
from cashdesk.core.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# модели смен и движений; триггеры неизменяемости ревизии создают сами
target_metadata = Base.metadata


def get_url():
    # тот же DATABASE_URL, что и у сервисов (.env)
    return settings.database_url


def run_migrations_offline():
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        {"sqlalchemy.url": get_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # SQLite не умеет ALTER для ограничений, только пересоздание таблицы
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
