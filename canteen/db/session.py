from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import create_engine
from canteen.core.config import settings

class Base(DeclarativeBase): pass

def _engine_options(dsn: str) -> dict:
    # sqlite is only used for local runs and tests; keep one shared connection
    if dsn.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True}

engine = create_engine(settings.POSTGRES_DSN, **_engine_options(settings.POSTGRES_DSN))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
