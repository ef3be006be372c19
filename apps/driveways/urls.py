"""URL routing for the driveways domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import DrivewayViewSet

router = DefaultRouter()
router.register(r"", DrivewayViewSet, basename="driveway")

urlpatterns = [
    path("", include(router.urls)),
]
