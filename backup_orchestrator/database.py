from sqlalchemy.engine import Engine
from sqlmodel import create_engine, SQLModel
import os

DATA_DIR = "data"
DATABASE_FILE = "backup.db"
DATABASE_PATH = os.path.join(DATA_DIR, DATABASE_FILE)
DATABASE_URL = f"sqlite:///{DATABASE_PATH}"


def create_db_engine(database_url: str = DATABASE_URL, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        # Ensure the data directory exists
        directory = os.path.dirname(database_url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)
    return create_engine(database_url, echo=echo)


def create_db_and_tables(engine: Engine):
    SQLModel.metadata.create_all(engine)
