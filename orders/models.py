from __future__ import annotations

from django.db import models

from core.exceptions import ConsistencyError

from .enums import DispatchChannel, OrderStatus


class Order(models.Model):
    """One purchase attempt and everything needed to report it afterwards."""

    reference = models.CharField(max_length=64, unique=True)
    email = models.EmailField()
    first_name = models.CharField(max_length=80, blank=True, default="")
    last_name = models.CharField(max_length=80, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")

    # minor currency units (kobo); never a float
    amount = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3, default="NGN")

    ip = models.CharField(max_length=64, blank=True, default="")
    user_agent = models.TextField(blank=True, default="")
    fbclid = models.CharField(max_length=255, blank=True, default="")
    fbc = models.CharField(max_length=255, blank=True, default="")
    fbp = models.CharField(max_length=255, blank=True, default="")
    country = models.CharField(max_length=2, default="NG")

    status = models.CharField(
        max_length=16, choices=OrderStatus.choices, default=OrderStatus.INITIALIZED
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    phone_collected_at = models.DateTimeField(null=True, blank=True)

    access_token = models.CharField(max_length=64, blank=True, default="")
    token_expires_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="order_status_idx"),
            models.Index(fields=["access_token", "token_expires_at"], name="order_token_idx"),
            models.Index(fields=["created_at"], name="order_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.reference} {self.status}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._frozen = {
            name: getattr(instance, name)
            for name in ("reference", "amount")
            if name in field_names
        }
        return instance

    def save(self, *args, **kwargs):
        frozen = getattr(self, "_frozen", None)
        if self.pk and frozen:
            for name, original in frozen.items():
                if getattr(self, name) != original:
                    raise ConsistencyError(
                        f"Order.{name} is immutable",
                        code="immutable_field",
                        extra={"reference": frozen.get("reference"), "field": name},
                    )
        super().save(*args, **kwargs)
        self._frozen = {"reference": self.reference, "amount": self.amount}

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.SUCCESS

    def dispatch_record(self, channel: str) -> "DispatchRecord":
        record, _ = DispatchRecord.objects.get_or_create(order=self, channel=channel)
        return record

    @property
    def attribution(self) -> "DispatchRecord":
        return self.dispatch_record(DispatchChannel.ATTRIBUTION)


class DispatchRecord(models.Model):
    """Delivery state of one outbound channel for one order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="dispatches")
    channel = models.CharField(max_length=24, choices=DispatchChannel.choices)
    sent = models.BooleanField(default=False)
    tries = models.PositiveIntegerField(default=0)
    last_tried_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    response = models.JSONField(null=True, blank=True)
    last_error = models.TextField(blank=True, default="")
    claimed_until = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["order", "channel"], name="uniq_dispatch_order_channel"),
        ]
        indexes = [
            models.Index(fields=["channel", "sent", "tries"], name="dispatch_pending_idx"),
        ]

    def __str__(self) -> str:
        state = "sent" if self.sent else f"pending({self.tries})"
        return f"{self.order_id}:{self.channel}:{state}"
