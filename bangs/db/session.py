from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from bangs.core.config import settings

# PostgreSQL configuration with connection pooling
engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    pool_size=10,
    max_overflow=20,
    pool_recycle=300,      # Recycle connections every 5 minutes
    pool_pre_ping=True,    # Validate connections before use
    pool_timeout=30,
    echo=False             # Set to True for SQL logging
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
