"""Database setup for the application.

The URL comes from `DATABASE_URL`; by default an absolute path to the
project-root `local.db` is used so launching the server from another
working directory does not create a second SQLite file.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from twinlink.services.config import DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
