from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

Base = declarative_base()


def build_engine(database_url: str):
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


def build_session_factory(engine):
    # Rows handed back by the store are read after their session closes
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
