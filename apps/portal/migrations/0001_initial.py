import uuid

import django.db.models.deletion
from django.db import migrations, models

import apps.portal.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="TherapeuticRelationship",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("client_label", models.CharField(blank=True, default="", max_length=255)),
                ("client_portal_token", models.CharField(
                    default=apps.portal.models.generate_portal_token,
                    help_text="Opaque token in the client's portal URL. Never log in full.",
                    max_length=128,
                    unique=True,
                )),
                ("portal_consented_at", models.DateTimeField(blank=True, null=True)),
                ("portal_consent_ip_hash", models.CharField(blank=True, max_length=64, null=True)),
                ("portal_pin_hash", models.CharField(blank=True, max_length=128, null=True)),
                ("portal_pin_salt", models.CharField(blank=True, max_length=64, null=True)),
                ("portal_pin_set_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "therapeutic_relationships",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("portal_pin_hash__isnull", True), ("portal_pin_salt__isnull", True)),
                            models.Q(("portal_pin_hash__isnull", False), ("portal_pin_salt__isnull", False)),
                            _connector="OR",
                        ),
                        name="portal_pin_hash_and_salt_together",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PortalPinAttempt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("ip_hash", models.CharField(max_length=64)),
                ("success", models.BooleanField()),
                ("attempted_at", models.DateTimeField(db_index=True)),
                ("relationship", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="pin_attempts",
                    to="portal.therapeuticrelationship",
                )),
            ],
            options={
                "verbose_name": "portal PIN attempt",
                "verbose_name_plural": "portal PIN attempts",
                "db_table": "portal_pin_attempts",
                "indexes": [
                    models.Index(fields=["relationship", "success", "attempted_at"], name="portal_pin_rel_window_idx"),
                    models.Index(fields=["ip_hash", "success", "attempted_at"], name="portal_pin_ip_window_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RelationshipEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_type", models.CharField(choices=[("consent_granted", "Consent granted")], max_length=50)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField()),
                ("relationship", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="events",
                    to="portal.therapeuticrelationship",
                )),
            ],
            options={
                "verbose_name": "relationship event",
                "verbose_name_plural": "relationship events",
                "db_table": "relationship_events",
                "ordering": ["-created_at"],
            },
        ),
    ]
