from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="booking",
            name="refund_ref",
            field=models.CharField(
                blank=True,
                help_text="Gateway refund id once the charge has been returned.",
                max_length=255,
            ),
        ),
    ]
