"""
Conexão com o banco de dados.

SQLite para desenvolvimento local, PostgreSQL em produção.
A URL vem de DATABASE_URL (ver app/config.py).
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import DATABASE_URL

logger = logging.getLogger(__name__)


def create_db_engine(url: str = None):
    """Cria o engine SQLAlchemy conforme o dialeto."""
    db_url = url or DATABASE_URL

    if db_url.startswith("sqlite"):
        return create_engine(db_url, connect_args={"check_same_thread": False})

    return create_engine(
        db_url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


engine = create_db_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency do FastAPI: uma sessão por requisição."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Cria as tabelas que ainda não existem. Seguro chamar várias vezes."""
    import app.models  # noqa: F401  registra os modelos no metadata

    target = bind or engine
    Base.metadata.create_all(bind=target)
    url = str(target.url)
    logger.info(f"Banco inicializado: {url.split('@')[-1] if '@' in url else url}")


def commit_or_raise(db):
    """Commit; em caso de erro desfaz a transação e levanta StorageError."""
    from sqlalchemy.exc import SQLAlchemyError
    from app.services.exceptions import StorageError

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Erro ao gravar no banco: {e}")
        raise StorageError(str(e)) from e
