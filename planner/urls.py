from django.urls import path

from scheduling.api import api

urlpatterns = [
    path("api/", api.urls),
]
