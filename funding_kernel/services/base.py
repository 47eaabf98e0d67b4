"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract.  Services
    receive a SQLAlchemy ``Session`` and persist with ``session.flush()``,
    never ``session.commit()``: the caller owns the transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only query methods -- those belong
          in ``funding_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
