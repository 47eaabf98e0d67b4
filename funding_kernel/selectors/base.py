"""
Module: funding_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller but MUST
      NOT call session.add(), session.delete(), session.commit(), or
      session.flush().
    - No stored balances: every balance is derived from transaction rows.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Selectors accept a Session from the caller and only read."""

    def __init__(self, session: Session):
        self.session = session
