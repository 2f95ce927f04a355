"""Repository contracts shared by the order and inventory modules.

``IRepository[T]`` is the read/save contract every aggregate repository
implements.  ``ILockingRepository[T]`` adds the row lock both write paths take
before numbering an appended record (stock movement, delivery attempt).

Aggregates here are never deleted (orders and stock rows are audit
material), so neither contract has a ``delete``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

from django.db import models

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an aggregate by primary key, or ``None``."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> models.QuerySet:
        """Aggregates matching *filters* (repository-specific keys)."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist non-guarded fields of *entity*."""


class ILockingRepository(IRepository[T]):
    @abstractmethod
    def get_for_update(self, id: str) -> Optional[T]:
        """Retrieve an aggregate under ``SELECT ... FOR UPDATE``.

        Must be called inside ``transaction.atomic``.
        """
