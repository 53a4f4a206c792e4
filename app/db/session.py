from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

# SQLite (tests / local) necesita compartir conexiones entre hilos del threadpool
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False, "timeout": 30}

# Engine: PostgreSQL en producción
engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=connect_args,
)

# SessionLocal: lo que inyectaremos en los endpoints.
# expire_on_commit=False: los objetos devueltos por el coordinador
# se serializan después de cerrar la sesión.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    future=True,
)

# Base: clase base para los modelos SQLAlchemy
Base = declarative_base()
