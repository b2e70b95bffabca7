"""
Repositorio de clientes.
El sync de reservas vincula cada fila con un cliente por email, creandolo
si no existe.
"""
from typing import Dict, Optional, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities.sync_records import CustomerContact
from app.infrastructure.database.models import CustomerModel
from app.shared.exceptions.sync import StorageError

DEFAULT_CUSTOMER_NAME = "Unknown"
DEFAULT_LANGUAGE = "ko"


def normalize_email(email: Optional[str]) -> Optional[str]:
    text = (email or "").strip().lower()
    return text or None


class CustomerRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_ids(self, contacts: Sequence[CustomerContact]) -> Dict[str, int]:
        """
        Busca o crea un cliente por cada email distinto.

        El primer contacto de cada email aporta nombre y telefono al crear;
        los clientes existentes no se modifican.

        Returns:
            Dict email normalizado -> id de cliente

        Raises:
            StorageError: si la consulta o el alta fallan
        """
        by_email: Dict[str, CustomerContact] = {}
        for contact in contacts:
            email = normalize_email(contact.email)
            if email is not None and email not in by_email:
                by_email[email] = contact
        if not by_email:
            return {}

        try:
            result = await self.db.execute(
                select(CustomerModel.email, CustomerModel.id).where(CustomerModel.email.in_(list(by_email)))
            )
            ids = {email: customer_id for email, customer_id in result.all()}

            created = [
                CustomerModel(
                    name=contact.name or DEFAULT_CUSTOMER_NAME,
                    email=email,
                    phone=contact.phone,
                    language=DEFAULT_LANGUAGE,
                )
                for email, contact in by_email.items()
                if email not in ids
            ]
            if created:
                self.db.add_all(created)
                await self.db.flush()
                ids.update({customer.email: customer.id for customer in created})
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"No se pudieron vincular clientes: {e}") from e

        if created:
            logger.info(f"Clientes creados durante el sync: {len(created)}")
        return ids
