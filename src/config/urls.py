"""Root URL configuration.

- ``/health``: liveness/readiness probe (no auth)
- ``/api/v1/``: orders, tracking, carrier webhook and inventory
- ``/api/v1/auth/token/``: SimpleJWT pair, refresh and verify
- ``/api/schema/``, ``/api/docs/``, ``/api/redoc/``: OpenAPI (drf-spectacular)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)

auth_patterns = [
    path("", TokenObtainPairView.as_view(), name="token_obtain"),
    path("refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("verify/", TokenVerifyView.as_view(), name="token_verify"),
]

api_v1_patterns = [
    path("", include("modules.orders.urls")),
    path("", include("modules.inventory.urls")),
    path("auth/token/", include(auth_patterns)),
]

schema_patterns = [
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
    path("redoc/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
]

urlpatterns = [
    path("admin/", admin.site.urls),
    path("", include("modules.core.urls")),
    path("api/v1/", include(api_v1_patterns)),
    path("api/", include(schema_patterns)),
]
