from sqlalchemy import engine_from_config, pool
from alembic import context
from canteen.core.config import settings
from canteen.db.session import Base
import canteen.db.models  # noqa

config = context.config
target_metadata = Base.metadata

# kept apart from other services sharing the database
VERSION_TABLE = "alembic_version_canteen"

def database_url() -> str:
    # an explicit sqlalchemy.url (tests, one-off runs) wins over POSTGRES_DSN
    return config.get_main_option("sqlalchemy.url") or settings.POSTGRES_DSN

def run_migrations_offline():
    context.configure(
        url=database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table=VERSION_TABLE,
        compare_type=True
    )
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    connectable = engine_from_config(
        {"sqlalchemy.url": database_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table=VERSION_TABLE,
            compare_type=True,
            # sqlite cannot ALTER most constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
