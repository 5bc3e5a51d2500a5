"""URL configuration for the TaleemHub service."""
from django.urls import include, path

urlpatterns = [
    path("api/", include("accounts.urls")),
    path("api/", include("datarequests.urls")),
]
