import re
import string
from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidConfigError

_HOSTNAME_RE = re.compile(r"^[A-Za-z0-9_](?:[A-Za-z0-9_.\-]{0,252})$")
_IPV6_RE = re.compile(r"^[0-9A-Fa-f:]+(?:%[A-Za-z0-9]+)?$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.@$\-]{0,127}$")
_DATABASE_NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.$\-]{0,127}$")


def sanitize_filename(name: str) -> str:
    """
    Sanitizes a string to be used as a valid filename.
    - Converts to lowercase.
    - Replaces spaces and common separators with hyphens.
    - Removes characters that are not alphanumeric or hyphens.
    - Trims leading/trailing hyphens.
    """
    # Convert to lowercase
    name = name.lower()

    # Replace spaces and other separators with hyphens
    name = re.sub(r'[\s_.]+', '-', name)

    # Allow only alphanumeric characters and hyphens
    allowed_chars = string.ascii_letters + string.digits + '-'
    name = ''.join(c for c in name if c in allowed_chars)

    # Replace multiple hyphens with a single one
    name = re.sub(r'--+', '-', name)

    # Trim leading/trailing hyphens
    name = name.strip('-')

    return name


def artifact_timestamp(moment: Optional[datetime] = None) -> str:
    """
    UTC ISO-8601 instant with millisecond precision, made filesystem safe.

    2026-10-19T08:30:00.123Z becomes 2026-10-19T08-30-00-123Z.
    """
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
    return re.sub(r'[:.]', '-', iso)


def validate_host(host: str) -> str:
    if host and (_HOSTNAME_RE.match(host) or (":" in host and _IPV6_RE.match(host))):
        return host
    raise InvalidConfigError(f"Invalid host: {host!r}")


def validate_username(username: str) -> str:
    if username and _USERNAME_RE.match(username):
        return username
    raise InvalidConfigError(f"Invalid username: {username!r}")


def validate_database_name(database_name: str) -> str:
    if database_name and _DATABASE_NAME_RE.match(database_name):
        return database_name
    raise InvalidConfigError(f"Invalid database name: {database_name!r}")


def validate_port(port: int) -> int:
    if isinstance(port, int) and 0 < port < 65536:
        return port
    raise InvalidConfigError(f"Invalid port: {port!r}")
