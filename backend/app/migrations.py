"""Utility helpers to ensure the database schema is up to date."""

from __future__ import annotations

import errno
import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine.reflection import Inspector

from .config import DATABASE_URL_ENV, MIGRATION_LOCK_TIMEOUT_ENV, read_float_env
from .database import SQLALCHEMY_DATABASE_URL

LOGGER = logging.getLogger(__name__)

LOCK_FILENAME = ".alembic-migration.lock"
LOCK_RETRY_DELAY = 0.25
DEFAULT_LOCK_TIMEOUT = 30.0

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl
else:  # pragma: no cover - platform specific
    import msvcrt

RevisionSentinel = tuple[str, Callable[[Inspector], bool]]


def _table_exists(inspector: Inspector, table_name: str) -> bool:
    return inspector.has_table(table_name)


def _read_lock_timeout() -> float:
    return read_float_env(MIGRATION_LOCK_TIMEOUT_ENV, DEFAULT_LOCK_TIMEOUT)


def _is_lock_conflict(error: OSError) -> bool:
    errno_value = getattr(error, "errno", None)
    if errno_value in {errno.EACCES, errno.EAGAIN, errno.EBUSY}:
        return True
    winerror = getattr(error, "winerror", None)
    # ERROR_LOCK_VIOLATION (33) and ERROR_SHARING_VIOLATION (32) are common
    # when another process already holds an exclusive lock on Windows.
    return winerror in {32, 33}


def _acquire_lock(fileobj, *, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            if os.name == "posix":  # pragma: no cover - platform specific
                fcntl.flock(fileobj.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            else:  # pragma: no cover - platform specific
                msvcrt.locking(fileobj.fileno(), msvcrt.LK_NBLCK, 1)
            return
        except (BlockingIOError, OSError) as error:
            if not isinstance(error, BlockingIOError) and not _is_lock_conflict(error):
                raise
            if time.monotonic() >= deadline:
                raise TimeoutError("Timed out waiting for Alembic migration lock") from error
            time.sleep(LOCK_RETRY_DELAY)


def _release_lock(fileobj) -> None:
    try:
        if os.name == "posix":  # pragma: no cover - platform specific
            fcntl.flock(fileobj.fileno(), fcntl.LOCK_UN)
        else:  # pragma: no cover - platform specific
            msvcrt.locking(fileobj.fileno(), msvcrt.LK_UNLCK, 1)
    except OSError:  # pragma: no cover - best effort cleanup
        pass


@contextmanager
def _migration_lock(path: Path, *, timeout: float) -> Iterator[None]:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a+") as handle:
        LOGGER.debug("Acquiring Alembic migration lock at %s", path)
        _acquire_lock(handle, timeout=timeout)
        try:
            yield
        finally:
            _release_lock(handle)
            LOGGER.debug("Released Alembic migration lock at %s", path)


REVISION_SENTINELS: Sequence[RevisionSentinel] = (
    (
        "20261019_0001",
        lambda inspector: all(
            _table_exists(inspector, table)
            for table in ("users", "products", "sale_records", "goals", "operational_metric_events")
        ),
    ),
)


def _determine_latest_revision(inspector: Inspector, sentinels: Iterable[RevisionSentinel]) -> str | None:
    for revision, check in sentinels:
        if check(inspector):
            return revision
    return None


def _build_config() -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    config = Config(str(base_dir / "alembic.ini"))
    config.set_main_option("script_location", str(base_dir / "alembic"))

    project_root = base_dir.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    database_url = os.getenv(DATABASE_URL_ENV) or SQLALCHEMY_DATABASE_URL
    config.set_main_option("sqlalchemy.url", database_url)
    return config


def _apply(config: Config, inspector: Inspector, head_revision: str | None) -> None:
    if inspector.has_table("alembic_version"):
        LOGGER.debug("Alembic version table present; upgrading to head if needed")
        command.upgrade(config, "head")
        return

    existing_tables = [table for table in inspector.get_table_names() if table != "alembic_version"]
    if not existing_tables:
        LOGGER.debug("Empty database; running full upgrade")
        command.upgrade(config, "head")
        return

    detected_revision = _determine_latest_revision(inspector, REVISION_SENTINELS)
    if detected_revision is None:
        LOGGER.info("Found %d unversioned tables; running full upgrade", len(existing_tables))
        command.upgrade(config, "head")
        return

    LOGGER.info("Existing tables match revision %s; stamping before upgrade", detected_revision)
    command.stamp(config, detected_revision)
    if detected_revision != head_revision:
        command.upgrade(config, "head")


def run_database_migrations() -> None:
    """Bring the schema to the latest Alembic revision before serving requests.

    Databases created by ``Base.metadata.create_all`` have no version table;
    they are stamped with the revision their tables match instead of being
    migrated from scratch.
    """

    config = _build_config()
    final_url = config.get_main_option("sqlalchemy.url")
    LOGGER.info("Running database migrations at %s", final_url)

    lock_path = Path(__file__).resolve().parent.parent / LOCK_FILENAME
    with _migration_lock(lock_path, timeout=_read_lock_timeout()):
        connect_args = {"check_same_thread": False} if final_url.startswith("sqlite") else {}
        engine = create_engine(final_url, connect_args=connect_args)
        try:
            head_revision = ScriptDirectory.from_config(config).get_current_head()
            _apply(config, inspect(engine), head_revision)
        finally:
            engine.dispose()
