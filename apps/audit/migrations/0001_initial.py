from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_timestamp", models.DateTimeField()),
                ("actor_display", models.CharField(default="", max_length=255)),
                ("ip_hash", models.CharField(blank=True, default="", max_length=64)),
                ("action", models.CharField(
                    choices=[
                        ("portal_consent", "Portal consent recorded"),
                        ("portal_pin_set", "Portal PIN set"),
                        ("portal_pin_verified", "Portal PIN verified"),
                        ("portal_pin_failed", "Portal PIN incorrect"),
                        ("portal_pin_rate_limited", "Portal PIN attempts blocked"),
                        ("portal_pin_removed", "Portal PIN removed"),
                    ],
                    max_length=50,
                )),
                ("resource_type", models.CharField(max_length=100)),
                ("resource_id", models.CharField(blank=True, default="", max_length=64)),
                ("metadata", models.JSONField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "audit log entry",
                "verbose_name_plural": "audit log entries",
                "db_table": "audit_log",
                "ordering": ["-event_timestamp"],
            },
        ),
    ]
