"""Wiring of the orchestrator and its collaborators from Settings.

Nothing here is cached: every call builds fresh objects so that callers can
pass them around explicitly.
"""

from sqlalchemy.engine import Engine

from .config import Settings, CONFIG_PATH
from .database import create_db_engine
from .dump_engine import DumpEngine
from .orchestrator import Orchestrator
from .probe import ConnectionProbe
from .registry import ConfigRegistry, SQLConfigRegistry, YamlConfigRegistry
from .sink import ResultSink, SQLResultSink


def build_store(settings: Settings) -> Engine:
    return create_db_engine(settings.database_url)


def build_registry(settings: Settings, store: Engine, config_path: str = CONFIG_PATH) -> ConfigRegistry:
    if settings.registry == "config":
        return YamlConfigRegistry(config_path)
    return SQLConfigRegistry(store)


def build_probe(settings: Settings) -> ConnectionProbe:
    return ConnectionProbe(
        timeout=settings.probe_timeout_seconds,
        tls_mode=settings.probe_tls_mode,
        ca_file=settings.probe_ca_file,
    )


def build_orchestrator(settings: Settings, sink: ResultSink) -> Orchestrator:
    dump_engine = DumpEngine(
        pg_dump_path=settings.pg_dump_path,
        mysqldump_path=settings.mysqldump_path,
        timeout=settings.dump_timeout_seconds,
    )
    return Orchestrator(
        dump_engine,
        sink,
        files_dir=settings.files_dir,
        max_workers=settings.max_parallel_jobs,
        probe=build_probe(settings) if settings.probe_before_dump else None,
        deadline=settings.batch_timeout_seconds,
    )


def build_sink(store: Engine) -> ResultSink:
    return SQLResultSink(store)
