"""Client registry - find-or-create keyed by (consultant, email)"""
from decimal import Decimal
from typing import Optional, Tuple
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.client import Client

logger = logging.getLogger(__name__)


def split_full_name(full_name: str) -> Tuple[str, str]:
    """'Asha K Rao' -> ('Asha', 'K Rao')"""
    parts = full_name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class ClientService:
    """Client lookups and counter updates inside the caller's transaction"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_email(self, consultant_id: str, email: str) -> Optional[Client]:
        return self.db.query(Client).filter(
            Client.consultant_id == consultant_id,
            Client.email == email,
        ).first()

    def find_or_create(
        self,
        consultant_id: str,
        email: str,
        full_name: str,
        phone: Optional[str] = None
    ) -> Tuple[Client, bool]:
        """
        Return (client, created)

        Creation runs in a savepoint: if a concurrent request inserted the
        same (email, consultant) first, the savepoint is rolled back and the
        winner's row is returned. The outer transaction is left intact.
        """
        email = email.strip().lower()
        client = self.get_by_email(consultant_id, email)
        if client:
            logger.info(f"Existing client found: {client.id}")
            return client, False

        first_name, last_name = split_full_name(full_name)
        savepoint = self.db.begin_nested()
        try:
            client = Client(
                consultant_id=consultant_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                name=full_name.strip(),
                phone_number=phone,
                is_active=True,
                total_sessions=0,
                total_amount_paid=Decimal("0"),
            )
            self.db.add(client)
            self.db.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            client = self.get_by_email(consultant_id, email)
            if client is None:
                raise
            logger.info(f"Client {email} created concurrently; using {client.id}")
            return client, False

        logger.info(f"New client created: {client.id}")
        return client, True

    def increment_total_sessions(self, client_id: str, by: int = 1) -> None:
        self.db.execute(
            update(Client)
            .where(Client.id == client_id)
            .values(total_sessions=Client.total_sessions + by)
            .execution_options(synchronize_session=False)
        )

    def add_amount_paid(self, client_id: str, amount: Decimal) -> None:
        """Adjust the running paid total; pass a negative amount for refunds"""
        self.db.execute(
            update(Client)
            .where(Client.id == client_id)
            .values(total_amount_paid=Client.total_amount_paid + amount)
            .execution_options(synchronize_session=False)
        )
