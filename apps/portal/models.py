"""Models backing client portal access control.

TherapeuticRelationship is the row the portal link resolves to. The access
core reads and updates only its portal_* fields. PortalPinAttempt and
RelationshipEvent are append-only ledgers.
"""
import secrets
import uuid

from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from apps.audit.append_only import AppendOnlyModel


def generate_portal_token():
    """Long, unguessable token used in the client's portal URL."""
    return secrets.token_urlsafe(32)


class TherapeuticRelationshipQuerySet(models.QuerySet):

    def active(self):
        """Exclude soft-deleted relationships."""
        return self.filter(deleted_at__isnull=True)


class TherapeuticRelationship(models.Model):
    """A therapist's relationship with one client, reachable by portal link."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    client_label = models.CharField(max_length=255, blank=True, default="")
    client_portal_token = models.CharField(
        max_length=128, unique=True, default=generate_portal_token,
        help_text="Opaque token in the client's portal URL. Never log in full.",
    )

    # Consent is set once, never cleared or overwritten
    portal_consented_at = models.DateTimeField(null=True, blank=True)
    portal_consent_ip_hash = models.CharField(max_length=64, null=True, blank=True)

    # PIN hash and salt are both set or both null
    portal_pin_hash = models.CharField(max_length=128, null=True, blank=True)
    portal_pin_salt = models.CharField(max_length=64, null=True, blank=True)
    portal_pin_set_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = TherapeuticRelationshipQuerySet.as_manager()

    class Meta:
        app_label = "portal"
        db_table = "therapeutic_relationships"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(portal_pin_hash__isnull=True, portal_pin_salt__isnull=True)
                    | Q(portal_pin_hash__isnull=False, portal_pin_salt__isnull=False)
                ),
                name="portal_pin_hash_and_salt_together",
            ),
        ]

    def __str__(self):
        return self.client_label or str(self.pk)

    @property
    def has_consented(self):
        return self.portal_consented_at is not None

    @property
    def has_pin(self):
        return bool(self.portal_pin_hash and self.portal_pin_salt)


class PortalPinAttempt(AppendOnlyModel):
    """One PIN check against a relationship. Source of truth for rate limiting."""

    relationship = models.ForeignKey(
        TherapeuticRelationship,
        on_delete=models.PROTECT,
        related_name="pin_attempts",
    )
    ip_hash = models.CharField(max_length=64)
    success = models.BooleanField()
    attempted_at = models.DateTimeField(db_index=True)

    class Meta:
        app_label = "portal"
        db_table = "portal_pin_attempts"
        verbose_name = "portal PIN attempt"
        verbose_name_plural = "portal PIN attempts"
        indexes = [
            models.Index(fields=["relationship", "success", "attempted_at"], name="portal_pin_rel_window_idx"),
            models.Index(fields=["ip_hash", "success", "attempted_at"], name="portal_pin_ip_window_idx"),
        ]

    def __str__(self):
        outcome = "ok" if self.success else "failed"
        return f"{self.attempted_at} | {self.relationship_id} | {outcome}"


class RelationshipEvent(AppendOnlyModel):
    """Event history for a relationship (consent grants and the like)."""

    EVENT_TYPE_CHOICES = [
        ("consent_granted", _("Consent granted")),
    ]

    # metadata["scope"] values distinguishing consent types
    SCOPE_PORTAL = "portal"
    SCOPE_HOMEWORK = "homework"

    relationship = models.ForeignKey(
        TherapeuticRelationship,
        on_delete=models.PROTECT,
        related_name="events",
    )
    event_type = models.CharField(max_length=50, choices=EVENT_TYPE_CHOICES)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField()

    class Meta:
        app_label = "portal"
        db_table = "relationship_events"
        ordering = ["-created_at"]
        verbose_name = "relationship event"
        verbose_name_plural = "relationship events"

    def __str__(self):
        return f"{self.created_at} | {self.relationship_id} | {self.event_type}"
