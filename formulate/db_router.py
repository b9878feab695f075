"""Route the audit app to its own database.

The audit database user should have INSERT-only permission, so nothing but
the audit app may migrate or write there.
"""

AUDIT_APP_LABEL = "audit"
AUDIT_DB_ALIAS = "audit"


class AuditRouter:
    """Send audit models to the "audit" alias and everything else to default."""

    def db_for_read(self, model, **hints):
        if model._meta.app_label == AUDIT_APP_LABEL:
            return AUDIT_DB_ALIAS
        return None

    def db_for_write(self, model, **hints):
        if model._meta.app_label == AUDIT_APP_LABEL:
            return AUDIT_DB_ALIAS
        return None

    def allow_relation(self, obj1, obj2, **hints):
        # Audit rows store plain ids, never foreign keys into the app database
        labels = {obj1._meta.app_label, obj2._meta.app_label}
        if AUDIT_APP_LABEL in labels and len(labels) > 1:
            return False
        return None

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        if app_label == AUDIT_APP_LABEL:
            return db == AUDIT_DB_ALIAS
        return db == "default"
