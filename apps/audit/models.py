"""Immutable audit log — stored in separate database."""
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.audit.append_only import AppendOnlyModel


class AuditLog(AppendOnlyModel):
    """
    Append-only audit trail of client portal security events. The database
    user for this table should have INSERT-only permission (no UPDATE/DELETE).

    Portal clients are anonymous, so rows identify the relationship and the
    hashed origin only. Raw IP addresses are never stored.
    """

    ACTION_CHOICES = [
        ("portal_consent", _("Portal consent recorded")),
        ("portal_pin_set", _("Portal PIN set")),
        ("portal_pin_verified", _("Portal PIN verified")),
        ("portal_pin_failed", _("Portal PIN incorrect")),
        ("portal_pin_rate_limited", _("Portal PIN attempts blocked")),
        ("portal_pin_removed", _("Portal PIN removed")),
    ]

    event_timestamp = models.DateTimeField()
    actor_display = models.CharField(max_length=255, default="")
    ip_hash = models.CharField(max_length=64, blank=True, default="")
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    resource_type = models.CharField(max_length=100)
    resource_id = models.CharField(max_length=64, blank=True, default="")
    metadata = models.JSONField(null=True, blank=True)

    class Meta:
        app_label = "audit"
        db_table = "audit_log"
        ordering = ["-event_timestamp"]
        verbose_name = "audit log entry"
        verbose_name_plural = "audit log entries"

    def __str__(self):
        return f"{self.event_timestamp} | {self.actor_display} | {self.action} {self.resource_type}"
