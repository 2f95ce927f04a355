"""Shared model bases and the event outbox.

- ``BaseModel``: UUIDv7 primary key with created_at / updated_at.
- ``AppendOnlyModel``: rows that can be inserted but never changed or
  deleted through the ORM (order lines, status history, tracking events,
  stock movements, delivery attempts).
- ``OutboxEvent``: domain events committed with the write that raised them.
"""

from __future__ import annotations

import uuid6
from django.db import models
from django.utils import timezone

# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class BaseModel(models.Model):
    """Abstract base with UUIDv7 PK and timestamp bookkeeping."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid6.uuid7,
        editable=False,
    )
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        """Ensure ``updated_at`` is refreshed even when ``update_fields`` is passed."""
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


# ---------------------------------------------------------------------------
# Append-only rows
# ---------------------------------------------------------------------------


class ImmutableRecordError(Exception):
    """An append-only record was about to be modified or deleted."""


class AppendOnlyQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError(
            f"{self.model._meta.label} rows are append-only and cannot be updated."
        )

    def delete(self):
        raise ImmutableRecordError(
            f"{self.model._meta.label} rows are append-only and cannot be deleted."
        )


class AppendOnlyModel(BaseModel):
    """Abstract model for audit records.

    Corrections are made by appending a new row, never by editing history:
    ``save()`` on an existing row and every ``delete()`` raise
    ``ImmutableRecordError``.
    """

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ImmutableRecordError(
                f"{self._meta.label} {self.pk} is append-only and cannot be updated."
            )
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ImmutableRecordError(
            f"{self._meta.label} {self.pk} is append-only and cannot be deleted."
        )


# ---------------------------------------------------------------------------
# Outbox
# ---------------------------------------------------------------------------


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxQuerySet(models.QuerySet):
    def dispatchable(self, max_retries: int) -> "OutboxQuerySet":
        """Rows the publisher should (re)try, oldest first."""
        return self.filter(
            status__in=[EventStatus.PENDING, EventStatus.FAILED],
            retry_count__lt=max_retries,
        ).order_by("created_at")

    def backlog(self) -> dict:
        counts = dict(
            self.exclude(status=EventStatus.PUBLISHED)
            .order_by()
            .values_list("status")
            .annotate(n=models.Count("id"))
        )
        return {
            "pending": counts.get(EventStatus.PENDING, 0),
            "failed": counts.get(EventStatus.FAILED, 0),
        }


class OutboxEvent(BaseModel):
    """An order or stock event waiting to reach the in-process bus.

    Rows are written by ``modules.core.outbox.write_events`` inside the same
    transaction as the status change or stock movement they describe, so a
    rolled-back write never leaves an event behind.  The beat-scheduled
    ``core.publish_outbox_events`` task picks up ``dispatchable`` rows; a row
    whose handler raised stays ``FAILED`` and is retried until ``retry_count``
    reaches the publisher's limit.
    """

    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20,
        choices=EventStatus.choices,
        default=EventStatus.PENDING,
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    objects = OutboxQuerySet.as_manager()

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["event_type"], name="outbox_event_type_idx"),
            models.Index(fields=["aggregate_id"], name="outbox_aggregate_id_idx"),
            models.Index(
                fields=["status", "created_at"], name="outbox_status_created_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"

    def mark_as_published(self) -> None:
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.error_message = None
        self.save(update_fields=["status", "processed_at", "error_message"])

    def mark_as_failed(self, error: str) -> None:
        self.status = EventStatus.FAILED
        self.error_message = error
        self.retry_count += 1
        self.save(update_fields=["status", "error_message", "retry_count"])
