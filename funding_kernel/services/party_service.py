"""
Service layer for Collective (party) operations.

Resolves the source party of an order: an existing collective by id, or a
USER collective found or created by email.  Creation races on the unique
email are resolved with a savepoint and a re-read, the way SequenceService
resolves counter creation.
"""

from __future__ import annotations

import re
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from funding_kernel.exceptions import NotFound, ValidationFailed
from funding_kernel.logging_config import get_logger
from funding_kernel.models.collective import Collective, CollectiveType
from funding_kernel.services.base import BaseService

logger = get_logger("services.party")

_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")


def _slugify(value: str) -> str:
    return _SLUG_UNSAFE.sub("-", value.lower()).strip("-") or "user"


class PartyService(BaseService):
    """Lookup and creation of collectives."""

    def get(self, collective_id: UUID) -> Collective:
        collective = self.session.get(Collective, collective_id)
        if collective is None:
            raise NotFound("Collective", str(collective_id))
        return collective

    def find_by_email(self, email: str) -> Collective | None:
        return self.session.execute(
            select(Collective).where(Collective.email == email.strip().lower())
        ).scalar_one_or_none()

    def find_or_create_user(
        self,
        email: str,
        name: str | None = None,
        currency: str = "USD",
    ) -> Collective:
        """
        Return the USER collective identified by ``email``, creating it if
        needed.

        Raises:
            ValidationFailed: If the email is empty or malformed.
        """
        normalized = (email or "").strip().lower()
        if "@" not in normalized:
            raise ValidationFailed(f"Invalid email: {email!r}", "from_email")

        existing = self.find_by_email(normalized)
        if existing is not None:
            return existing

        display_name = name or normalized.split("@", 1)[0]
        savepoint = self.session.begin_nested()
        try:
            collective = Collective(
                slug=f"{_slugify(display_name)}-{uuid4().hex[:8]}",
                name=display_name,
                type=CollectiveType.USER,
                email=normalized,
                currency=currency,
            )
            self.session.add(collective)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("collective_create_race_retry", extra={"email": normalized})
            existing = self.find_by_email(normalized)
            if existing is None:
                raise
            return existing

        logger.info(
            "user_collective_created",
            extra={"collective_id": str(collective.id), "slug": collective.slug},
        )
        return collective
