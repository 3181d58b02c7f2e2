"""
Shared fixtures: database configs and fake dump tools.

The fake tools are tiny Python scripts that behave like pg_dump/mysqldump for
the arguments the engine passes. They record every invocation (argv and the
password environment variable) as a JSON file so tests can assert on them.
Database names drive their behaviour:

- ``broken``: print an authentication error to stderr and exit 1
- ``slow``: sleep long enough to be cancelled
- anything else: write a small artifact and exit 0
"""

import json
import os
import stat
import sys
from pathlib import Path

import pytest

from backup_orchestrator.schemas import DatabaseConfig

_RECORD_CALL = '''
import json, os, sys, time, uuid
argv = sys.argv[1:]
log_dir = os.environ.get("FAKE_TOOL_LOG_DIR")
if log_dir:
    with open(os.path.join(log_dir, uuid.uuid4().hex + ".json"), "w") as f:
        json.dump({
            "tool": os.path.basename(sys.argv[0]),
            "argv": sys.argv,
            "pgpassword": os.environ.get("PGPASSWORD"),
            "mysql_pwd": os.environ.get("MYSQL_PWD"),
        }, f)
'''

FAKE_PG_DUMP = _RECORD_CALL + '''
database = argv[argv.index("-d") + 1]
if database == "broken":
    sys.stderr.write('pg_dump: error: connection to server failed: FATAL:  password authentication failed for user "u"')
    sys.exit(1)
if database == "slow":
    time.sleep(30)
with open(argv[argv.index("-f") + 1], "wb") as f:
    f.write(b"PGDMP fake custom archive for " + database.encode())
'''

FAKE_MYSQLDUMP = _RECORD_CALL + '''
database = argv[-1]
if database == "broken":
    sys.stderr.write("mysqldump: Got error: 1045: Access denied for user 'u'@'localhost' (using password: YES)")
    sys.exit(2)
if database == "slow":
    time.sleep(30)
sys.stdout.write("-- MySQL dump of " + database + "\\nCREATE TABLE t (id INT);\\n")
'''


def write_tool(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class FakeTools:
    def __init__(self, pg_dump: str, mysqldump: str, log_dir: Path):
        self.pg_dump = pg_dump
        self.mysqldump = mysqldump
        self.log_dir = log_dir

    def calls(self):
        return [json.loads(p.read_text()) for p in sorted(self.log_dir.glob("*.json"))]


@pytest.fixture
def fake_tools(tmp_path, monkeypatch):
    """Executable stand-ins for pg_dump and mysqldump."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    log_dir = tmp_path / "tool-calls"
    log_dir.mkdir()
    monkeypatch.setenv("FAKE_TOOL_LOG_DIR", str(log_dir))
    monkeypatch.delenv("PGPASSWORD", raising=False)
    monkeypatch.delenv("MYSQL_PWD", raising=False)

    pg_dump = write_tool(bin_dir / "pg_dump", FAKE_PG_DUMP)
    mysqldump = write_tool(bin_dir / "mysqldump", FAKE_MYSQLDUMP)
    return FakeTools(str(pg_dump), str(mysqldump), log_dir)


@pytest.fixture
def make_config():
    """Factory for DatabaseConfig with sensible defaults."""

    def _make(**overrides) -> DatabaseConfig:
        values = {
            "id": "db_1",
            "name": "orders",
            "engine": "postgresql",
            "host": "db1",
            "port": 5432,
            "username": "u",
            "password": "s3cret",
            "database_name": "orders",
        }
        values.update(overrides)
        return DatabaseConfig(**values)

    return _make


@pytest.fixture
def files_dir(tmp_path):
    return str(tmp_path / "files")


@pytest.fixture
def unwritable_dir(tmp_path):
    """A path that can never be created because its parent is a regular file."""
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    return os.path.join(str(blocker), "files")
