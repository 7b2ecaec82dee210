"""
Línea de comandos del sistema de asistencia.

Uso:
  asistencia-tenis proxy [--host H] [--port P]   levanta el relay Flask
  asistencia-tenis sync                          vacía la cola pendiente una vez
  asistencia-tenis status                        pendientes por tipo y borrador
  asistencia-tenis monitor                       sincroniza al recuperar conexión

Los comandos sync/status imprimen un JSON y terminan con exit code 0 si todo
salió bien.
"""

import argparse
import json
import logging
import time
from typing import List, Optional

from .config import Config, get_system_info
from .errors import StorageError
from .logger_config import setup_logging
from .services.catalog_service import CatalogService
from .services.class_registrar import ClassRegistrar
from .services.submission_pipeline import SubmissionPipeline
from .storage.draft_store import DraftStore
from .storage.local_store import LocalStore
from .storage.pending_queue import PendingQueue
from .sync.connectivity_monitor import ConnectivityMonitor
from .sync.sheets_client import SheetsClient

logger = logging.getLogger(__name__)


def build_pipeline(store_path: Optional[str] = None, proxy_url: Optional[str] = None) -> SubmissionPipeline:
    store = LocalStore(store_path or Config.LOCAL_STORE_PATH)
    client = SheetsClient(base_url=proxy_url)
    catalog = CatalogService(client, store, cache_ttl_sec=Config.CATALOG_CACHE_TTL_SEC)
    registrar = ClassRegistrar(
        client,
        catalog,
        past_days=Config.REPORT_PAST_DAYS,
        future_days=Config.REPORT_FUTURE_DAYS,
        default_user=Config.DEFAULT_USER,
    )
    return SubmissionPipeline(
        client,
        catalog,
        registrar,
        DraftStore(store, ttl_hours=Config.DRAFT_TTL_HOURS),
        PendingQueue(store),
        default_user=Config.DEFAULT_USER,
    )


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def cmd_proxy(args) -> int:
    from .sync.sheets_proxy import create_app

    app = create_app()
    logger.info(f"Proxy iniciado en http://{args.host}:{args.port}/api/sheets")
    app.run(host=args.host, port=args.port)
    return 0


def cmd_sync(args) -> int:
    try:
        pipeline = build_pipeline(args.store, args.proxy_url)
        result = pipeline.sync_pending()
    except StorageError as e:
        _print({"ok": False, "error": f"storage_failed: {e}"})
        return 2
    _print({"ok": result.error is None, **result.to_dict()})
    return 0 if result.error is None else 1


def cmd_status(args) -> int:
    try:
        pipeline = build_pipeline(args.store, args.proxy_url)
        draft = pipeline.drafts.recover()
        out = {
            "ok": True,
            "pending": pipeline.pending.count(),
            "pendingByKind": pipeline.pending.count_by_kind(),
            "draft": None,
            "config": get_system_info(),
        }
    except StorageError as e:
        _print({"ok": False, "error": f"storage_failed: {e}"})
        return 2
    if draft is not None:
        out["draft"] = {
            "groupCode": draft.grupo_codigo,
            "fecha": draft.fecha,
            "marks": len(draft.attendance_data),
            "classId": draft.class_id,
            "timestamp": draft.timestamp,
        }
    _print(out)
    return 0


def cmd_monitor(args) -> int:
    pipeline = build_pipeline(args.store, args.proxy_url)
    monitor = ConnectivityMonitor(pipeline.sync_pending, proxy_url=args.proxy_url, interval=args.interval)
    monitor.start()
    logger.info(f"Monitor de conexión activo ({monitor.health_url}, cada {monitor.interval}s)")
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Monitor detenido por el usuario")
    finally:
        monitor.stop(timeout=5.0)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="asistencia-tenis", description="Registro de asistencia de clases de tenis")
    parser.add_argument("--store", default=None, help="Ruta del almacenamiento local (SQLite)")
    parser.add_argument("--proxy-url", default=None, help="URL del proxy /api/sheets")
    parser.add_argument("--debug", action="store_true", help="Logging en nivel DEBUG")
    sub = parser.add_subparsers(dest="command", required=True)

    p_proxy = sub.add_parser("proxy", help="Levanta el proxy hacia Apps Script")
    p_proxy.add_argument("--host", default=Config.PROXY_HOST)
    p_proxy.add_argument("--port", type=int, default=Config.PROXY_PORT)
    p_proxy.set_defaults(func=cmd_proxy)

    sub.add_parser("sync", help="Envía la cola pendiente una vez").set_defaults(func=cmd_sync)
    sub.add_parser("status", help="Muestra pendientes y borrador").set_defaults(func=cmd_status)

    p_monitor = sub.add_parser("monitor", help="Sincroniza automáticamente al recuperar conexión")
    p_monitor.add_argument("--interval", type=float, default=None)
    p_monitor.set_defaults(func=cmd_monitor)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    Config.ensure_directories()
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
