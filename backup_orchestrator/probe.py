"""
Connectivity probe for registered databases.

Opens one short-lived connection with a bounded connect timeout, issues a
single round-trip and closes the connection again. The probe never retries.

TLS is governed by ``tls_mode``:

- ``insecure``: encrypt but accept any server certificate (self-signed
  deployments). This is the default and does not protect against a
  man-in-the-middle; callers that need pinning must use ``verify``.
- ``verify``: validate the certificate chain and host name, optionally
  against ``ca_file``.
- ``disable``: plain-text connection.
"""

import socket
from contextlib import closing
from typing import Optional

import mysql.connector
import psycopg
from mysql.connector import errorcode

from .errors import (
    BackupError, ConnectionFailure, ConnectionFailureReason, UnsupportedEngineError,
)
from .logger import get_logger
from .metrics import PROBES_TOTAL
from .schemas import DatabaseConfig, ProbeResult, MYSQL, POSTGRESQL

logger = get_logger(__name__)

TLS_MODES = ("insecure", "verify", "disable")

_PG_SSLMODES = {
    "insecure": "require",
    "verify": "verify-full",
    "disable": "disable",
}

_MYSQL_AUTH_ERRORS = {
    errorcode.ER_ACCESS_DENIED_ERROR,
    errorcode.ER_DBACCESS_DENIED_ERROR,
}
_MYSQL_NETWORK_ERRORS = {
    errorcode.CR_CONN_HOST_ERROR,
    errorcode.CR_UNKNOWN_HOST,
    errorcode.CR_CONNECTION_ERROR,
}


def classify_message(message: str) -> ConnectionFailureReason:
    text = message.lower()
    if "timeout" in text or "timed out" in text:
        return ConnectionFailureReason.TIMEOUT
    if "authentication failed" in text or "access denied" in text or "password" in text:
        return ConnectionFailureReason.AUTHENTICATION
    if any(marker in text for marker in (
        "could not translate host name", "name or service not known", "unknown mysql server host",
        "connection refused", "no route to host", "network is unreachable", "can't connect",
    )):
        return ConnectionFailureReason.NETWORK
    return ConnectionFailureReason.OTHER


class ConnectionProbe:
    """Tests reachability and credentials of a single database configuration."""

    def __init__(self, timeout: float = 5.0, tls_mode: str = "insecure", ca_file: Optional[str] = None):
        if tls_mode not in TLS_MODES:
            raise ValueError(f"Unknown TLS mode: {tls_mode}")
        self.timeout = timeout
        self.tls_mode = tls_mode
        self.ca_file = ca_file

    def probe(self, config: DatabaseConfig) -> ProbeResult:
        try:
            self.check(config)
        except BackupError as e:
            kind = e.reason.value if isinstance(e, ConnectionFailure) else e.kind
            logger.warning(f"Connection probe failed for '{config.name}': {e}")
            PROBES_TOTAL.labels(engine=config.engine, status="failed").inc()
            return ProbeResult(success=False, error_kind=kind, error=str(e))

        PROBES_TOTAL.labels(engine=config.engine, status="succeeded").inc()
        return ProbeResult(success=True)

    def check(self, config: DatabaseConfig) -> None:
        """Raise UnsupportedEngineError or ConnectionFailure if the database is not serving."""
        logger.debug(f"Probing {config.engine} database '{config.name}' at {config.host}:{config.port}")
        if config.engine == POSTGRESQL:
            self._check_postgresql(config)
        elif config.engine == MYSQL:
            self._check_mysql(config)
        else:
            raise UnsupportedEngineError(config.engine)

    def _connect_timeout(self) -> int:
        # libpq ignores values below 2 seconds
        return max(2, int(round(self.timeout)))

    def _check_postgresql(self, config: DatabaseConfig) -> None:
        kwargs = {
            "host": config.host,
            "port": config.port,
            "user": config.username,
            "password": config.password,
            "dbname": config.database_name,
            "connect_timeout": self._connect_timeout(),
            "sslmode": _PG_SSLMODES[self.tls_mode],
        }
        if self.tls_mode == "verify" and self.ca_file:
            kwargs["sslrootcert"] = self.ca_file

        try:
            with closing(psycopg.connect(**kwargs)) as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except psycopg.OperationalError as e:
            raise ConnectionFailure(classify_message(str(e)), str(e).strip()) from e
        except psycopg.Error as e:
            raise ConnectionFailure(ConnectionFailureReason.OTHER, str(e).strip()) from e
        except (socket.timeout, TimeoutError) as e:
            raise ConnectionFailure(ConnectionFailureReason.TIMEOUT, f"Connection timed out: {e}") from e
        except OSError as e:
            raise ConnectionFailure(ConnectionFailureReason.NETWORK, str(e)) from e

    def _check_mysql(self, config: DatabaseConfig) -> None:
        kwargs = {
            "host": config.host,
            "port": config.port,
            "user": config.username,
            "password": config.password,
            "database": config.database_name,
            "connection_timeout": self._connect_timeout(),
        }
        if self.tls_mode == "disable":
            kwargs["ssl_disabled"] = True
        elif self.tls_mode == "verify":
            kwargs["ssl_verify_cert"] = True
            kwargs["ssl_verify_identity"] = True
            if self.ca_file:
                kwargs["ssl_ca"] = self.ca_file
        else:
            kwargs["ssl_verify_cert"] = False
            kwargs["ssl_verify_identity"] = False

        try:
            with closing(mysql.connector.connect(**kwargs)) as conn:
                conn.ping(reconnect=False)
        except mysql.connector.Error as e:
            raise ConnectionFailure(self._classify_mysql(e), str(e)) from e
        except (socket.timeout, TimeoutError) as e:
            raise ConnectionFailure(ConnectionFailureReason.TIMEOUT, f"Connection timed out: {e}") from e
        except OSError as e:
            raise ConnectionFailure(ConnectionFailureReason.NETWORK, str(e)) from e

    @staticmethod
    def _classify_mysql(error: "mysql.connector.Error") -> ConnectionFailureReason:
        message = str(error)
        if "timed out" in message.lower() or "timeout" in message.lower():
            return ConnectionFailureReason.TIMEOUT
        if error.errno in _MYSQL_AUTH_ERRORS:
            return ConnectionFailureReason.AUTHENTICATION
        if error.errno in _MYSQL_NETWORK_ERRORS:
            return ConnectionFailureReason.NETWORK
        return classify_message(message)
