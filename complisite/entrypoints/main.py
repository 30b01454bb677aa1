from __future__ import annotations

import argparse
import faulthandler
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Callable

from complisite.application.background_sync import TAG_KINDS, WakeMessage
from complisite.bootstrap.container import AppContainer, build_container
from complisite.bootstrap.logging import configure_logging, install_exception_hook
from complisite.bootstrap.settings import resolve_db_path, resolve_log_dir
from complisite.core.errors import AppError
from complisite.domain.mutations import MutationKind, QueuedMutation
from complisite.infrastructure import migrations
from complisite.infrastructure.health_probes import SQLiteQueueProbe
from complisite.infrastructure.db import get_connection

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SYNC_PENDING = 1
EXIT_ERROR = 2

ContainerFactory = Callable[[], AppContainer]


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


def _describe(record: QueuedMutation) -> dict[str, Any]:
    return {
        "id": record.id,
        "kind": record.kind.value,
        "created_at": record.created_at,
        "attempts": record.attempts,
        "last_error": record.last_error,
    }


ENQUEUE_NOTE = (
    "Solo guarda la mutación en la cola local: no sondea la red ni contacta con la API. "
    "La sincronización ocurre con drain, wake o run."
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="complisite", description="Cola offline y sincronización de CompliSite")
    parser.add_argument("--selfcheck", action="store_true", help="Valida la cola local sin contactar con la API")
    parser.add_argument("--verbose", action="store_true", help="Muestra avisos también por consola")
    sub = parser.add_subparsers(dest="command")

    status = sub.add_parser("status", help="Estado de conectividad y mutaciones pendientes")
    status.add_argument("--details", action="store_true", help="Lista las mutaciones pendientes")

    checklist = sub.add_parser(
        "enqueue-checklist", help="Registra la (des)marcación de un ítem (solo cola local)", description=ENQUEUE_NOTE
    )
    checklist.add_argument("item_id")
    checklist.add_argument("--incomplete", action="store_true", help="Marca el ítem como no completado")
    checklist.add_argument("--project-id")
    checklist.add_argument("--notes")

    photo = sub.add_parser(
        "enqueue-photo", help="Encola una foto de evidencia (solo cola local)", description=ENQUEUE_NOTE
    )
    photo.add_argument("item_id")
    photo.add_argument("path", type=Path)
    photo.add_argument("--content-type")
    photo.add_argument("--project-id")

    comment = sub.add_parser(
        "enqueue-comment", help="Encola un comentario (solo cola local)", description=ENQUEUE_NOTE
    )
    comment.add_argument("target_id")
    comment.add_argument("text")
    comment.add_argument("--author-id")

    drain = sub.add_parser("drain", help="Ejecuta una pasada de sincronización")
    drain.add_argument("--kind", choices=[kind.value for kind in MutationKind])

    wake = sub.add_parser("wake", help="Simula un wake de background sync")
    wake.add_argument("--tag", required=True, choices=sorted(TAG_KINDS))

    sub.add_parser("gc", help="Elimina las mutaciones ya sincronizadas")
    sub.add_parser("run", help="Arranca monitor y host de background hasta Ctrl+C")

    migrate = sub.add_parser("migrate", help="Gestiona migraciones de la cola")
    migrate.add_argument("migrate_command", choices=["up", "down", "status"])
    migrate.add_argument("--steps", type=int, default=1)
    return parser


def _run_selfcheck() -> int:
    db_path = resolve_db_path()
    connection = get_connection(db_path)
    try:
        migrations.run_migrations(connection)
    finally:
        connection.close()
    checks = SQLiteQueueProbe(lambda: get_connection(db_path)).check()
    ok = all(passed for passed, _ in checks.values())
    _emit({"selfcheck": "ok" if ok else "failed", "checks": {key: message for key, (_, message) in checks.items()}})
    if not ok:
        logger.error("Selfcheck falló: %s", checks)
    return EXIT_OK if ok else EXIT_ERROR


def _run_forever(container: AppContainer) -> int:
    stop_event = threading.Event()

    def _request_stop(_signum: int, _frame: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    container.start()
    _emit({"running": True, "online": container.connectivity.is_online, "tags": list(container.background_host.tags)})
    if container.connectivity.is_online:
        container.synchronizer.drain()
    stop_event.wait()
    container.stop()
    return EXIT_OK


def _dispatch(args: argparse.Namespace, container: AppContainer) -> int:
    command = args.command
    if command == "status":
        container.connectivity.prime()
        summary = container.queue.pending_summary()
        payload: dict[str, Any] = {"online": summary.online, "pending": summary.total, "by_kind": summary.by_kind}
        if args.details:
            payload["items"] = [_describe(record) for record in container.queue.pending()]
        _emit(payload)
        return EXIT_OK
    if command == "enqueue-checklist":
        record = container.queue.record_checklist_completion(
            args.item_id, not args.incomplete, project_id=args.project_id, notes=args.notes
        )
        _emit({"enqueued": record.id})
        return EXIT_OK
    if command == "enqueue-photo":
        record = container.queue.queue_photo_file(
            args.path, args.item_id, content_type=args.content_type, project_id=args.project_id
        )
        _emit({"enqueued": record.id})
        return EXIT_OK
    if command == "enqueue-comment":
        record = container.queue.queue_comment(args.target_id, args.text, author_id=args.author_id)
        _emit({"enqueued": record.id})
        return EXIT_OK
    if command == "drain":
        container.connectivity.prime()
        report = container.synchronizer.drain(MutationKind(args.kind) if args.kind else None)
        _emit(report.to_dict())
        return EXIT_SYNC_PENDING if report.has_failures else EXIT_OK
    if command == "wake":
        container.connectivity.prime()
        container.background_trigger.register(args.tag)
        report = container.background_trigger.handle_wake(WakeMessage(tag=args.tag))
        _emit(report.to_dict() if report else {"ignored": args.tag})
        return EXIT_SYNC_PENDING if report and report.has_failures else EXIT_OK
    if command == "gc":
        _emit({"deleted": container.queue.clear_synced()})
        return EXIT_OK
    if command == "run":
        return _run_forever(container)
    raise ValueError(f"Comando desconocido: {command}")


def main(argv: list[str] | None = None, *, container_factory: ContainerFactory | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir, console=args.verbose)
    install_exception_hook(log_dir)
    faulthandler.enable()
    logger.info("Log dir: %s", log_dir)
    logger.info("Python: %s", sys.version)

    if args.selfcheck:
        return _run_selfcheck()
    if args.command is None:
        parser.print_help(sys.stderr)
        return EXIT_ERROR
    if args.command == "migrate":
        migrate_argv = [args.migrate_command, "--steps", str(args.steps)]
        return migrations.main(migrate_argv)

    try:
        container = (container_factory or build_container)()
    except AppError as exc:
        logger.error("No se pudo iniciar: %s", exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_ERROR

    try:
        return _dispatch(args, container)
    except AppError as exc:
        logger.error("Operación %s fallida: %s", args.command, exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_ERROR
    finally:
        container.close()
