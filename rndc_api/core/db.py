from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from rndc_api.core.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite en memoria (pruebas / desarrollo local): una sola conexión compartida
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {"pool_pre_ping": True}


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Registrar modelos en el metadata antes de crear tablas
    from rndc_api.models import rndc_lote, rndc_envio, rndc_consulta, rndc_manifiesto  # noqa: F401

    Base.metadata.create_all(bind=engine)
