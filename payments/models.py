from __future__ import annotations

from django.db import models

from core.logging import current_request_id


class AuditLog(models.Model):
    """Append-only trail of payment and dispatch events for manual reconciliation."""

    event = models.CharField(max_length=64)
    order = models.ForeignKey(
        "orders.Order", null=True, blank=True, on_delete=models.CASCADE, related_name="audit_logs"
    )
    reference = models.CharField(max_length=64, blank=True, default="", db_index=True)
    request_id = models.CharField(max_length=64, blank=True, default="")
    message = models.TextField(blank=True, default="")
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["event", "created_at"], name="audit_event_idx")]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.event}:{self.reference}"

    @classmethod
    def log(
        cls,
        *,
        event: str,
        order=None,
        reference: str = "",
        request_id: str = "",
        message: str = "",
        meta: dict | None = None,
    ):
        return cls.objects.create(
            event=event,
            order=order,
            reference=reference or getattr(order, "reference", "") or "",
            request_id=request_id or current_request_id(),
            message=message,
            meta=meta or {},
        )
