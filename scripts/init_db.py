"""
Crea las tablas destino del sync y las tablas de control (historial, mapeos)
que aun no existan. Para entornos gestionados usar `alembic upgrade head`.

Ejecución:
  python scripts/init_db.py
"""
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

load_dotenv(_ROOT / ".env", override=False)

from app.infrastructure.database.session import init_db, close_db
from app.infrastructure.database import models  # noqa: F401


async def main() -> None:
    try:
        created = await init_db()
        if created:
            logger.success(f"Tablas creadas ({len(created)}): {', '.join(created)}")
        else:
            logger.info("Todas las tablas ya existian")
    except Exception as e:
        logger.error(f"Error al inicializar base de datos: {e}")
        raise
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
