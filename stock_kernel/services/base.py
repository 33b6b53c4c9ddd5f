"""
BaseService -- abstract base for session-bound kernel services.

Responsibility:
    Common constructor for services that work inside a transaction opened
    by someone else.  They use ``session.flush()`` and never commit.

Architecture position:
    Kernel > Services.  The public facades (StockLedger, CountWorkflow,
    ReconciliationApplier) own transaction boundaries through a
    TransactionRunner; the session-bound services they call (LedgerWriter)
    extend this class.

Invariants enforced:
    - Session-bound services never call ``session.commit()`` or
      ``session.rollback()``.  The runner that opened the session owns both.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for session-bound services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and persists with
        ``session.flush()`` within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those live in ``selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
