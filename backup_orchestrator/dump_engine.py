import os
import subprocess
import hashlib
import threading
import time
from datetime import datetime
from typing import List, Optional, Tuple

from .errors import FilesystemFailure, ToolInvocationFailure, UnsupportedEngineError
from .logger import get_logger
from .schemas import BackupArtifact, DatabaseConfig, MYSQL, POSTGRESQL, SUPPORTED_ENGINES
from .utils import (
    artifact_timestamp, sanitize_filename, validate_database_name, validate_host,
    validate_port, validate_username,
)

logger = get_logger(__name__)

FILE_EXTENSIONS = {
    POSTGRESQL: "dump",
    MYSQL: "sql",
}

MAX_NAME_ATTEMPTS = 100


def ensure_output_dir(output_dir: str) -> None:
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        raise FilesystemFailure(f"Cannot create output directory {output_dir}: {e}") from e
    if not os.access(output_dir, os.W_OK):
        raise FilesystemFailure(f"Output directory is not writable: {output_dir}")


def file_checksum(path: str) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class DumpEngine:
    """Produces one dump artifact for one database by running the engine's dump tool."""

    def __init__(
        self,
        pg_dump_path: str = "pg_dump",
        mysqldump_path: str = "mysqldump",
        timeout: Optional[float] = None,
        poll_interval: float = 0.2,
    ):
        self.pg_dump_path = pg_dump_path
        self.mysqldump_path = mysqldump_path
        self.timeout = timeout
        self.poll_interval = poll_interval

    def dump(
        self,
        config: DatabaseConfig,
        output_dir: str,
        started_at: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BackupArtifact:
        if config.engine not in SUPPORTED_ENGINES:
            raise UnsupportedEngineError(config.engine)

        validate_host(config.host)
        validate_port(config.port)
        validate_username(config.username)
        validate_database_name(config.database_name)

        ensure_output_dir(output_dir)
        filename, file_path = self._reserve_artifact(config, output_dir, started_at)
        logger.info(f"Backing up '{config.name}' ({config.engine}) to {file_path}")

        try:
            if config.engine == POSTGRESQL:
                env = os.environ.copy()
                env["PGPASSWORD"] = config.password
                self._run_tool(self.pg_dump_command(config, file_path), env, subprocess.DEVNULL, cancel_event)
            else:
                env = os.environ.copy()
                env["MYSQL_PWD"] = config.password
                with open(file_path, "wb") as f:
                    self._run_tool(self.mysqldump_command(config), env, f, cancel_event)

            size_bytes = os.path.getsize(file_path)
            checksum = file_checksum(file_path)
        except OSError as e:
            self._discard(file_path)
            raise FilesystemFailure(f"Cannot write artifact {file_path}: {e}") from e
        except ToolInvocationFailure:
            self._discard(file_path)
            raise

        logger.info(f"Backup of '{config.name}' written to {file_path} ({size_bytes} bytes)")
        return BackupArtifact(
            name=filename,
            path=file_path,
            engine=config.engine,
            size_bytes=size_bytes,
            checksum=checksum,
        )

    def pg_dump_command(self, config: DatabaseConfig, file_path: str) -> List[str]:
        return [
            self.pg_dump_path,
            "-h", config.host,
            "-p", str(config.port),
            "-U", config.username,
            "-d", config.database_name,
            "-F", "c",
            "-f", file_path,
            "--no-password",
        ]

    def mysqldump_command(self, config: DatabaseConfig) -> List[str]:
        return [
            self.mysqldump_path,
            "-h", config.host,
            "-P", str(config.port),
            "-u", config.username,
            config.database_name,
        ]

    def _reserve_artifact(
        self, config: DatabaseConfig, output_dir: str, started_at: Optional[datetime]
    ) -> Tuple[str, str]:
        base = sanitize_filename(config.name) or sanitize_filename(config.id) or "database"
        stamp = artifact_timestamp(started_at)
        extension = FILE_EXTENSIONS[config.engine]

        for attempt in range(MAX_NAME_ATTEMPTS):
            suffix = f"-{attempt}" if attempt else ""
            filename = f"{base}-{stamp}{suffix}.{extension}"
            file_path = os.path.join(output_dir, filename)
            try:
                fd = os.open(file_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
            except FileExistsError:
                continue
            except OSError as e:
                raise FilesystemFailure(f"Cannot create artifact {file_path}: {e}") from e
            os.close(fd)
            return filename, file_path

        raise FilesystemFailure(f"Could not allocate a unique artifact name for '{config.name}'")

    def _run_tool(self, cmd: List[str], env: dict, stdout, cancel_event: Optional[threading.Event]) -> None:
        tool = os.path.basename(cmd[0])
        # The password only ever travels through env, so the argv is safe to log
        logger.debug(f"Executing {tool} command: {' '.join(cmd)}")

        try:
            p = subprocess.Popen(cmd, env=env, stdout=stdout, stderr=subprocess.PIPE)
        except FileNotFoundError as e:
            raise ToolInvocationFailure(f"Dump tool not found: {cmd[0]}") from e
        except OSError as e:
            raise ToolInvocationFailure(f"Failed to start {cmd[0]}: {e}") from e

        deadline = time.monotonic() + self.timeout if self.timeout else None
        while True:
            try:
                _, p_stderr = p.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                cancelled = cancel_event is not None and cancel_event.is_set()
                expired = deadline is not None and time.monotonic() >= deadline
                if cancelled or expired:
                    p.kill()
                    _, p_stderr = p.communicate()
                    log_output = (p_stderr or b"").decode("utf-8", errors="replace").strip()
                    raise ToolInvocationFailure(
                        f"{tool} timed out and was terminated", returncode=p.returncode, stderr=log_output
                    )

        log_output = (p_stderr or b"").decode("utf-8", errors="replace").strip()
        if p.returncode != 0:
            raise ToolInvocationFailure(
                f"{tool} failed with exit code {p.returncode}: {log_output}",
                returncode=p.returncode,
                stderr=log_output,
            )
        if log_output:
            logger.debug(f"{tool} output: {log_output}")

    @staticmethod
    def _discard(file_path: str) -> None:
        try:
            if os.path.exists(file_path):
                logger.debug(f"Removing partial artifact: {file_path}")
                os.remove(file_path)
        except OSError as e:
            logger.warning(f"Could not remove partial artifact {file_path}: {e}")
