"""URL configuration for the Formulate client portal service."""
from django.urls import include, path

urlpatterns = [
    # ── Client portal API (anonymous, token in body) ──
    path("api/client-portal/", include("apps.portal.urls")),
    # ── Client portal pages (PIN session cookie is scoped here) ──
    path("client/<str:portal_token>/", include("apps.portal.client_urls")),
]
