import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reference", models.CharField(max_length=64, unique=True)),
                ("email", models.EmailField(max_length=254)),
                ("first_name", models.CharField(blank=True, default="", max_length=80)),
                ("last_name", models.CharField(blank=True, default="", max_length=80)),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="NGN", max_length=3)),
                ("ip", models.CharField(blank=True, default="", max_length=64)),
                ("user_agent", models.TextField(blank=True, default="")),
                ("fbclid", models.CharField(blank=True, default="", max_length=255)),
                ("fbc", models.CharField(blank=True, default="", max_length=255)),
                ("fbp", models.CharField(blank=True, default="", max_length=255)),
                ("country", models.CharField(default="NG", max_length=2)),
                (
                    "status",
                    models.CharField(
                        choices=[("initialized", "Initialized"), ("success", "Success"), ("failed", "Failed")],
                        default="initialized",
                        max_length=16,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("phone_collected_at", models.DateTimeField(blank=True, null=True)),
                ("access_token", models.CharField(blank=True, default="", max_length=64)),
                ("token_expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="order_status_idx"),
                    models.Index(fields=["access_token", "token_expires_at"], name="order_token_idx"),
                    models.Index(fields=["created_at"], name="order_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DispatchRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "channel",
                    models.CharField(
                        choices=[
                            ("attribution", "Attribution (Meta CAPI)"),
                            ("notify_order", "Notification: order placed"),
                            ("notify_phone", "Notification: phone collected"),
                        ],
                        max_length=24,
                    ),
                ),
                ("sent", models.BooleanField(default=False)),
                ("tries", models.PositiveIntegerField(default=0)),
                ("last_tried_at", models.DateTimeField(blank=True, null=True)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("response", models.JSONField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, default="")),
                ("claimed_until", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="dispatches",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["channel", "sent", "tries"], name="dispatch_pending_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "channel"), name="uniq_dispatch_order_channel"),
                ],
            },
        ),
    ]
