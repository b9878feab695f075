"""Routes under /client/<portal_token>/, the PIN session cookie's path."""
from django.urls import path

from . import views

app_name = "portal_client"
urlpatterns = [
    path("access/", views.portal_access, name="access"),
]
