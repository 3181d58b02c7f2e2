import yaml
import os
from typing import List, Optional
from pydantic import BaseModel, Field, PositiveInt, ValidationError

from .errors import ConfigError
from .logger import get_logger
from .schemas import DatabaseConfig

logger = get_logger(__name__)

CONFIG_PATH = "config.yaml"

# Environment variable -> settings field
ENV_OVERRIDES = {
    "FILES_DIR": "files_dir",
    "DATABASE_URL": "database_url",
    "PG_DUMP_PATH": "pg_dump_path",
    "MYSQLDUMP_PATH": "mysqldump_path",
    "MAX_PARALLEL_JOBS": "max_parallel_jobs",
    "LOG_LEVEL": "log_level",
}


def default_files_dir() -> str:
    return os.path.join(os.getcwd(), "files")


class Settings(BaseModel):
    files_dir: str = Field(default_factory=default_files_dir)
    database_url: str = "sqlite:///data/backup.db"
    registry: str = "database"
    pg_dump_path: str = "pg_dump"
    mysqldump_path: str = "mysqldump"
    max_parallel_jobs: PositiveInt = 4
    batch_timeout_seconds: Optional[float] = None
    dump_timeout_seconds: Optional[float] = None
    probe_before_dump: bool = False
    probe_timeout_seconds: float = 5.0
    probe_tls_mode: str = "insecure"
    probe_ca_file: Optional[str] = None
    schedule: Optional[str] = None
    metrics_file: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = "data/backup_orchestrator.log"


def load_config(config_path: str = CONFIG_PATH) -> dict:
    """Read config.yaml. A missing file is an empty configuration, a broken one is an error."""
    if not os.path.exists(config_path):
        logger.debug(f"No config file at {config_path}, using defaults.")
        return {}

    with open(config_path, "r") as f:
        try:
            config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing {config_path}: {e}")
            raise ConfigError(f"Error parsing {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    return config_data


def load_settings(config_data: Optional[dict] = None, environ: Optional[dict] = None) -> Settings:
    """Build Settings from the ``global`` section of config.yaml, then apply environment overrides."""
    config_data = config_data or {}
    environ = os.environ if environ is None else environ

    values = dict(config_data.get("global") or {})
    for env_name, field_name in ENV_OVERRIDES.items():
        if environ.get(env_name):
            logger.debug(f"Applying environment override {env_name} to '{field_name}'.")
            values[field_name] = environ[env_name]

    try:
        settings = Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if settings.registry not in ("database", "config"):
        raise ConfigError(f"Unknown registry '{settings.registry}', expected 'database' or 'config'")
    if settings.probe_tls_mode not in ("insecure", "verify", "disable"):
        raise ConfigError(f"Unknown probe_tls_mode '{settings.probe_tls_mode}'")
    return settings


def parse_database_configs(config_data: dict, environ: Optional[dict] = None) -> List[DatabaseConfig]:
    """Turn the ``databases`` section of config.yaml into DatabaseConfig objects."""
    environ = os.environ if environ is None else environ
    db_configs = config_data.get("databases") or []
    logger.debug(f"Found {len(db_configs)} database configurations in config file.")

    # Pre-validate for duplicate IDs
    config_ids = [conf.get('id') for conf in db_configs if conf.get('id')]
    if len(config_ids) > len(set(config_ids)):
        seen = set()
        duplicates = {x for x in config_ids if x in seen or seen.add(x)}
        raise ConfigError(f"Duplicate IDs found in config file: {sorted(duplicates)}")

    databases = []
    for entry in db_configs:
        config = dict(entry)
        config_id = config.get('id')
        if not config_id:
            db_name_for_log = config.get('name', 'N/A')
            logger.warning(
                f"Skipping a database configuration (name: {db_name_for_log}) "
                f"because it is missing the required 'id' field."
            )
            continue

        # Load credentials from environment variables or directly from config
        username_var = config.pop("username_var", None)
        password_var = config.pop("password_var", None)

        if "username" not in config and username_var:
            config["username"] = environ.get(username_var)
        if "password" not in config and password_var:
            config["password"] = environ.get(password_var)

        if not config.get("username") or not config.get("password"):
            logger.warning(f"Skipping database with id '{config_id}' due to missing credentials.")
            continue

        # "type" is accepted as an alias of "engine"
        if "engine" not in config and "type" in config:
            config["engine"] = config.pop("type")

        try:
            databases.append(DatabaseConfig(**config))
        except ValidationError as e:
            logger.warning(f"Skipping invalid database configuration '{config_id}': {e}")

    return databases
