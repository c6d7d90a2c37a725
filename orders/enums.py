from django.db import models


class OrderStatus(models.TextChoices):
    INITIALIZED = "initialized", "Initialized"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


class DispatchChannel(models.TextChoices):
    ATTRIBUTION = "attribution", "Attribution (Meta CAPI)"
    NOTIFY_ORDER = "notify_order", "Notification: order placed"
    NOTIFY_PHONE = "notify_phone", "Notification: phone collected"
