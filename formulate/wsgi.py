"""WSGI entry point for the Formulate web service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "formulate.settings.development")

application = get_wsgi_application()
