"""Database setup and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from config import settings

# SQLite needs this to be shared across the threadpool FastAPI runs sync deps in
connect_args = (
    {"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {}
)

engine = create_engine(
    settings.database_url,
    echo=False,
    future=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(
    engine,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


def init_db():
    """Create tables if they do not exist yet."""
    import models  # noqa: F401  (registers tables on Base.metadata)
    Base.metadata.create_all(bind=engine)


# Dependency for FastAPI
def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
