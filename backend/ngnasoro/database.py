from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from ngnasoro.core.config import settings

DATABASE_URL = settings.DATABASE_URL

engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
