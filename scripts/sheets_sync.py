"""
CLI: Google Sheets -> base de datos (sync de una hoja a su tabla destino).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) para corridas programadas.
  - Las corridas desde la UI usan POST /api/v1/sync/sheets.

Variables de entorno requeridas:
  - SHEETS_ACCESS_TOKEN o SHEETS_API_KEY
  - DATABASE_URL (o DATABASE_HOST/DATABASE_USER/...)

Ejecución:
  python scripts/sheets_sync.py --spreadsheet-id ID --sheet "Reservas" --table reservations
  python scripts/sheets_sync.py --spreadsheet-id ID --sheet "Reservas" --table reservations --mode incremental
  python scripts/sheets_sync.py --spreadsheet-id ID --list-sheets --prefix "Tour"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

# Cargar variables desde .env antes de construir settings
load_dotenv(_ROOT / ".env", override=False)

from app.api.v1.dependencies.use_case_deps import get_sheets_client
from app.application.dto.sync_dto import SyncRequestDTO
from app.application.use_cases.sync_use_cases import SheetSyncUseCases
from app.infrastructure.database.session import AsyncSessionLocal, close_db, init_db
from app.shared.constants.sync_constants import SyncMode
from app.shared.exceptions.base import AppException


def _parse_mapping(raw: str | None) -> dict | None:
    if not raw:
        return None
    path = Path(raw)
    text = path.read_text(encoding="utf-8") if path.exists() else raw
    mapping = json.loads(text)
    if not isinstance(mapping, dict):
        raise SystemExit("--mapping debe ser un objeto JSON {columna: campo}")
    return mapping


async def _run(args: argparse.Namespace) -> int:
    await init_db()
    try:
        async with AsyncSessionLocal() as db:
            use_cases = SheetSyncUseCases(db, get_sheets_client())

            if args.list_sheets:
                for name in await use_cases.list_sheets(args.spreadsheet_id, args.prefix):
                    print(name)
                return 0

            if not args.sheet or not args.table:
                raise SystemExit("--sheet y --table son obligatorios para sincronizar")

            request = SyncRequestDTO(
                spreadsheet_id=args.spreadsheet_id,
                sheet_name=args.sheet,
                target_table=args.table,
                column_mapping=_parse_mapping(args.mapping),
                mode=SyncMode(args.mode),
                allow_manual_overwrite=args.allow_manual_overwrite,
            )

            logger.info(f"Iniciando sync {args.sheet} -> {args.table} ({args.mode})...")
            result = await use_cases.run_sync(request)
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2, default=str))
            return 0 if result.success else 1
    except AppException as e:
        logger.error(f"Sync abortado [{e.error_code}]: {e.message}")
        if e.details:
            logger.error(f"Detalles: {e.details}")
        return 2
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(description="Sincroniza una hoja de Google Sheets con su tabla destino.")
    parser.add_argument("--spreadsheet-id", required=True, help="ID del spreadsheet")
    parser.add_argument("--sheet", help="Nombre de la hoja")
    parser.add_argument(
        "--table",
        help="Tabla destino (reservations, tours, payment_methods, reservation_expenses)",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SyncMode],
        default=SyncMode.FULL.value,
    )
    parser.add_argument(
        "--mapping",
        help="Mapeo explicito {columna: campo}, como JSON o ruta a un archivo JSON.",
    )
    parser.add_argument(
        "--allow-manual-overwrite",
        action="store_true",
        help="Permite actualizar registros creados a mano.",
    )
    parser.add_argument("--list-sheets", action="store_true", help="Solo lista las hojas del spreadsheet.")
    parser.add_argument("--prefix", help="Filtro por prefijo para --list-sheets.")
    args = parser.parse_args()

    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
