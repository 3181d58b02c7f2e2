# backup_orchestrator/error_parser.py
from typing import Optional

UNKNOWN_ERROR = "Unknown error: the backup failed for an unidentified reason. Check the full log for details."


def parse_backup_error(stderr: str, engine: str, kind: Optional[str] = None) -> str:
    """
    Parses the stderr output from a backup command and returns a human-readable summary.

    The raw text is kept verbatim in the outcome; this summary is only a label for operators.
    """
    stderr = (stderr or "").lower()

    if kind == "UnsupportedEngine":
        return f"Unsupported engine: '{engine}' cannot be backed up."
    if kind == "InvalidConfig":
        return "Invalid configuration: host, username or database name contains forbidden characters."
    if kind == "FilesystemFailure":
        return "Filesystem error: the output directory could not be created or written."
    if kind == "Timeout" or "timed out" in stderr:
        return "Timeout: the backup did not finish within the allotted time."
    if "dump tool not found" in stderr:
        return "Tool error: the dump executable is not installed or not on PATH."

    if engine == "postgresql":
        if "password authentication failed" in stderr:
            return "Authentication error: the supplied password was rejected."
        if "authentication failed" in stderr:
            return "Authentication error: the username or password is incorrect."
        if "does not exist" in stderr and "database" in stderr:
            return "Database error: the specified database does not exist."
        if "connection refused" in stderr:
            return "Connection error: could not connect to the database server. Check the host and port."
        if "could not translate host name" in stderr:
            return "Connection error: the host name could not be resolved. Check the server address."
        if "timeout expired" in stderr:
            return "Connection error: timed out while connecting to the server."
        if "permission denied" in stderr:
            return "Permission error: the user lacks the privileges required to run the backup."
        if "server version mismatch" in stderr:
            return "Tool error: pg_dump is older than the server. Point PG_DUMP_PATH at a matching version."

    elif engine == "mysql":
        if "access denied" in stderr:
            return "Authentication error: the username or password is incorrect."
        if "unknown database" in stderr:
            return "Database error: the specified database does not exist."
        if "can't connect" in stderr or "connection refused" in stderr:
            return "Connection error: could not connect to the database server. Check the host and port."
        if "unknown mysql server host" in stderr:
            return "Connection error: the host name could not be resolved. Check the server address."
        if "lost connection" in stderr:
            return "Connection error: the server closed the connection during the dump."
        if "privilege" in stderr or "command denied" in stderr:
            return "Permission error: the user lacks the privileges required to run the backup."

    return UNKNOWN_ERROR
