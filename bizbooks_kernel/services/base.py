"""
BaseService -- common constructor for kernel and orchestration services.

Services receive a SQLAlchemy ``Session`` and persist with
``session.flush()`` only.  Commit and rollback belong to the caller's
unit of work (``session_scope()``), which is what makes a multi-step
business operation all-or-nothing.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from bizbooks_kernel.db.base import Base
from bizbooks_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
        - ``clock`` defaults to SystemClock when not injected.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
