import abc
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .config import load_config, parse_database_configs, CONFIG_PATH
from .errors import ConfigError, RegistryError
from .logger import get_logger
from .models import Database
from .schemas import DatabaseConfig

logger = get_logger(__name__)


class ConfigRegistry(abc.ABC):
    """Source of the database configurations a batch runs over."""

    @abc.abstractmethod
    def list(self) -> List[DatabaseConfig]:
        pass

    def get(self, key: str) -> Optional[DatabaseConfig]:
        """Look a registration up by id, falling back to its name."""
        configs = self.list()
        return (
            next((c for c in configs if c.id == key), None)
            or next((c for c in configs if c.name == key), None)
        )


class SQLConfigRegistry(ConfigRegistry):
    def __init__(self, engine: Engine):
        self.engine = engine

    def list(self) -> List[DatabaseConfig]:
        try:
            with Session(self.engine) as session:
                rows = session.exec(select(Database).order_by(Database.created_at)).all()
        except SQLAlchemyError as e:
            raise RegistryError(f"Could not read registered databases: {e}") from e
        logger.debug(f"Found {len(rows)} registered databases.")

        configs = []
        for row in rows:
            try:
                configs.append(DatabaseConfig.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping invalid database registration '{row.id}': {e}")
        return configs


class YamlConfigRegistry(ConfigRegistry):
    def __init__(self, config_path: str = CONFIG_PATH, environ: Optional[dict] = None):
        self.config_path = config_path
        self.environ = environ

    def list(self) -> List[DatabaseConfig]:
        try:
            return parse_database_configs(load_config(self.config_path), self.environ)
        except ConfigError as e:
            raise RegistryError(str(e)) from e
        except OSError as e:
            raise RegistryError(f"Could not read {self.config_path}: {e}") from e
