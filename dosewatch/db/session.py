from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dosewatch.core.config import settings


def _engine_options(uri: str) -> dict:
    if uri.startswith("sqlite"):
        # Scheduler thread, Celery and request handlers share the file
        return {"connect_args": {"check_same_thread": False}}
    # PostgreSQL configuration with connection pooling
    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_recycle": 300,    # Recycle connections every 5 minutes
        "pool_pre_ping": True,  # Validate connections before use
        "pool_timeout": 45,
    }


engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    echo=False,  # Set to True for SQL logging
    **_engine_options(settings.SQLALCHEMY_DATABASE_URI),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
