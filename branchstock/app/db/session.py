from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from branchstock.app.core.config import DATABASE_URL, DB_ISOLATION_LEVEL

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    isolation_level=DB_ISOLATION_LEVEL,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
