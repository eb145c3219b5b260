"""
Module: bizbooks_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Selectors return dataclass DTOs, not ORM instances.
    - The caller owns the session and its isolation level; report reads may
      run on a separate READ COMMITTED session without blocking posting.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from bizbooks_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Holds the caller's session for subclass queries."""

    def __init__(self, session: Session):
        self.session = session
