from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings


def get_database_url() -> str:
    url = get_settings().database_url
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite+pysqlite://") or ":memory:" in url


def create_db_engine(url: str | None = None):
    url = url or get_database_url()
    if is_memory_sqlite(url):
        # Una sola conexión: la BD en memoria vive mientras ella exista
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        # Fichero: pool por defecto, cada sesión usa su propia conexión
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_size=5, pool_recycle=1800, pool_pre_ping=True, max_overflow=10)


engine = create_db_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Sesión propia para trabajo fuera del ciclo de vida de la petición.

    Se usa en el middleware de accesos y en los cálculos que corren en
    segundo plano y pueden sobrevivir a la respuesta HTTP.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
