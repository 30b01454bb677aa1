from __future__ import annotations

import argparse
import hashlib
import json
import logging
import re
import sqlite3
import sys
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from complisite.bootstrap.logging import configure_logging
from complisite.bootstrap.settings import resolve_db_path, resolve_log_dir
from complisite.infrastructure.db import get_connection

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"
_UP_FILE = re.compile(r"^(?P<version>\d+)_(?P<name>[a-z0-9_]+)\.up\.sql$")

EXIT_OK = 0
EXIT_CHECKSUM_DRIFT = 1


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    up_sql: Path
    down_sql: Path

    def up_script(self) -> str:
        return self.up_sql.read_text(encoding="utf-8")

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.up_script().encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class MigrationStatus:
    version: int
    name: str
    applied: bool
    applied_at: str | None = None
    checksum_ok: bool | None = None


def discover_migrations(directory: Path) -> list[Migration]:
    """Pares ``NNN_nombre.up.sql``/``.down.sql`` ordenados por versión."""
    found: list[Migration] = []
    for up_file in directory.glob("*.up.sql"):
        match = _UP_FILE.match(up_file.name)
        if match is None:
            raise ValueError(f"Nombre de migración no válido: {up_file.name}")
        down_file = up_file.with_name(up_file.name.replace(".up.sql", ".down.sql"))
        if not down_file.exists():
            raise FileNotFoundError(f"Falta la migración down de {up_file.name}: {down_file}")
        found.append(Migration(int(match["version"]), match["name"], up_file, down_file))
    found.sort(key=lambda migration: migration.version)
    versions = [migration.version for migration in found]
    if len(versions) != len(set(versions)):
        raise ValueError(f"Versiones de migración duplicadas en {directory}")
    return found


class MigrationRunner:
    """Aplica y revierte el esquema de la cola sobre una conexión abierta.

    Cada versión se registra en ``schema_migrations`` con el sha256 del
    script ``up``; ``PRAGMA user_version`` refleja la última aplicada.
    """

    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self.connection = connection
        self.migrations = discover_migrations(migrations_dir or MIGRATIONS_DIR)
        self._by_version = {migration.version: migration for migration in self.migrations}

    def apply_all(self) -> list[int]:
        history = self._history()
        for status in self._statuses(history):
            if status.checksum_ok is False:
                logger.warning("La migración %04d_%s cambió tras aplicarse", status.version, status.name)
        pending = [migration for migration in self.migrations if migration.version not in history]
        for migration in pending:
            self._apply(migration)
        if pending:
            logger.info("Migraciones aplicadas: %s", [migration.version for migration in pending])
        return [migration.version for migration in pending]

    def rollback(self, steps: int = 1) -> list[int]:
        if steps < 1:
            raise ValueError("steps debe ser al menos 1")
        applied = sorted(self._history(), reverse=True)[:steps]
        for version in applied:
            migration = self._by_version.get(version)
            if migration is None:
                raise ValueError(f"La versión {version} está aplicada pero no hay script para revertirla")
            self._revert(migration)
        return applied

    def status(self) -> list[MigrationStatus]:
        return self._statuses(self._history())

    def _statuses(self, history: dict[int, tuple[str, str]]) -> list[MigrationStatus]:
        statuses: list[MigrationStatus] = []
        for migration in self.migrations:
            recorded = history.get(migration.version)
            if recorded is None:
                statuses.append(MigrationStatus(migration.version, migration.name, applied=False))
                continue
            checksum, applied_at = recorded
            statuses.append(
                MigrationStatus(
                    migration.version,
                    migration.name,
                    applied=True,
                    applied_at=applied_at,
                    checksum_ok=checksum == migration.checksum,
                )
            )
        return statuses

    def _history(self) -> dict[int, tuple[str, str]]:
        with self.connection:
            self.connection.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
                """
            )
        rows = self.connection.execute("SELECT version, checksum, applied_at FROM schema_migrations").fetchall()
        return {int(row[0]): (row[1], row[2]) for row in rows}

    def _apply(self, migration: Migration) -> None:
        script = migration.up_script()
        with self.connection:
            if script.strip():
                self.connection.executescript(script)
            self.connection.execute(
                "INSERT INTO schema_migrations (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                (
                    migration.version,
                    migration.name,
                    migration.checksum,
                    datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                ),
            )
            self.connection.execute(f"PRAGMA user_version = {migration.version}")

    def _revert(self, migration: Migration) -> None:
        script = migration.down_sql.read_text(encoding="utf-8")
        with self.connection:
            if script.strip():
                self.connection.executescript(script)
            self.connection.execute("DELETE FROM schema_migrations WHERE version = ?", (migration.version,))
            previous = self.connection.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()[0]
            self.connection.execute(f"PRAGMA user_version = {int(previous)}")
        logger.info("Migración %04d_%s revertida", migration.version, migration.name)


def run_migrations(connection: sqlite3.Connection) -> list[int]:
    return MigrationRunner(connection).apply_all()


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("debe ser un entero positivo")
    return value


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Gestiona migraciones de la cola offline")
    parser.add_argument("command", choices=["up", "down", "status"], help="Operación a ejecutar")
    parser.add_argument("--db", type=Path, default=None, help="Ruta al archivo SQLite")
    parser.add_argument("--steps", type=_positive_int, default=1, help="Número de migraciones a revertir")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Salida JSON por stdout; ``status`` devuelve 1 si algún script aplicado cambió."""
    args = build_cli().parse_args(argv)
    configure_logging(resolve_log_dir())

    exit_code = EXIT_OK
    connection = get_connection(args.db or resolve_db_path())
    try:
        runner = MigrationRunner(connection)
        if args.command == "up":
            payload: dict[str, object] = {"applied": runner.apply_all()}
        elif args.command == "down":
            payload = {"rolled_back": runner.rollback(args.steps)}
        else:
            statuses = runner.status()
            payload = {"migrations": [asdict(status) for status in statuses]}
            if any(status.checksum_ok is False for status in statuses):
                exit_code = EXIT_CHECKSUM_DRIFT
    finally:
        connection.close()
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
