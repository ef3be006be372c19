import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("driveways", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_code", models.CharField(editable=False, max_length=12, unique=True)),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField()),
                ("total_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("currency", models.CharField(default="USD", max_length=3)),
                (
                    "pricing",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Price breakdown captured when the booking was admitted.",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Awaiting payment"),
                            ("confirmed", "Confirmed"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                            ("completed", "Completed"),
                        ],
                        default="pending",
                        editable=False,
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Awaiting payment"),
                            ("paid", "Paid"),
                            ("failed", "Payment failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        editable=False,
                        max_length=16,
                    ),
                ),
                ("payment_intent_ref", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("vehicle_info", models.JSONField(blank=True, default=dict)),
                ("special_requests", models.TextField(blank=True)),
                ("expires_at", models.DateTimeField(help_text="Hold deadline; an unpaid booking expires after it.")),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "cancellation_source",
                    models.CharField(
                        blank=True,
                        choices=[("driver", "Driver"), ("owner", "Owner"), ("system", "System")],
                        max_length=16,
                    ),
                ),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                ("payment_failure_reason", models.CharField(blank=True, max_length=255)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "driveway",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="driveways.driveway",
                    ),
                ),
                (
                    "driver",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["driveway", "start_time", "end_time"], name="booking_driveway_window_idx"),
                    models.Index(fields=["status", "expires_at"], name="booking_status_expires_idx"),
                    models.Index(fields=["status", "end_time"], name="booking_status_end_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_time__gt", models.F("start_time"))),
                        name="booking_end_after_start",
                    ),
                    models.CheckConstraint(
                        condition=(
                            models.Q(("payment_status", "pending"), ("status", "pending"))
                            | models.Q(("payment_status", "paid"), ("status", "confirmed"))
                            | models.Q(("payment_status", "pending"), ("status", "cancelled"))
                            | models.Q(("payment_status", "failed"), ("status", "cancelled"))
                            | models.Q(("payment_status", "refunded"), ("status", "cancelled"))
                            | models.Q(("payment_status", "pending"), ("status", "expired"))
                            | models.Q(("payment_status", "failed"), ("status", "expired"))
                            | models.Q(("payment_status", "paid"), ("status", "completed"))
                        ),
                        name="booking_legal_state",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_price__gt", 0)),
                        name="booking_positive_price",
                    ),
                ],
            },
        ),
    ]
