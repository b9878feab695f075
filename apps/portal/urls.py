from django.urls import path

from . import views

app_name = "portal"
urlpatterns = [
    path("consent/", views.portal_consent, name="consent"),
    path("pin/set/", views.pin_set, name="pin_set"),
    path("pin/verify/", views.pin_verify, name="pin_verify"),
    path("pin/remove/", views.pin_remove, name="pin_remove"),
]
