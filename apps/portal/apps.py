from django.apps import AppConfig


class PortalConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.portal"
    label = "portal"
    verbose_name = "Client Portal Access"

    def ready(self):
        import apps.portal.config  # noqa: F401 -- registers system checks
