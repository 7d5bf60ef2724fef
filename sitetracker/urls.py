"""
URL configuration for the SiteTracker import service.

The spreadsheet import endpoints live in the excel_import app and are mounted
under 'api/'. JWT tokens for API clients are issued under 'api/token/'.
"""
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    # Include the excel_import app's URLs. This will include 'api/' in the URL path.
    path('api/', include('excel_import.urls')),
    # For JWT token obtain
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    # For JWT token refresh
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
