# backup_orchestrator/errors.py
from enum import Enum
from typing import Optional


class BackupError(RuntimeError):
    """Base class for every failure the orchestrator captures into an outcome."""

    kind = "Other"


class UnsupportedEngineError(BackupError):
    kind = "UnsupportedEngine"

    def __init__(self, engine: str):
        self.engine = engine
        super().__init__(f"Unsupported database engine: {engine}")


class ConnectionFailureReason(str, Enum):
    TIMEOUT = "Timeout"
    AUTHENTICATION = "AuthenticationFailure"
    NETWORK = "NetworkUnreachable"
    OTHER = "Other"


class ConnectionFailure(BackupError):
    kind = "ConnectionFailure"

    def __init__(self, reason: ConnectionFailureReason, message: str):
        self.reason = reason
        super().__init__(message)


class InvalidConfigError(BackupError):
    kind = "InvalidConfig"


class FilesystemFailure(BackupError):
    kind = "FilesystemFailure"


class ToolInvocationFailure(BackupError):
    kind = "ToolInvocationFailure"

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class JobTimeout(BackupError):
    kind = "Timeout"


class PersistenceError(BackupError):
    kind = "PersistenceFailure"


class RegistryError(BackupError):
    kind = "RegistryFailure"


class ConfigError(BackupError):
    kind = "ConfigFailure"
