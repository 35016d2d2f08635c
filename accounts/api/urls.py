"""
Accounts API URLs
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from .viewsets import ProfileView, UserAdminViewSet

app_name = 'accounts-api'

router = DefaultRouter()
router.register(r'users', UserAdminViewSet, basename='user')

urlpatterns = [
    path('me/', ProfileView.as_view(), name='profile'),
] + router.urls
