"""
Organizations API URLs
"""

from django.urls import path
from rest_framework.routers import SimpleRouter

from .viewsets import AcceptInvitationView, InvitationViewSet, MemberViewSet, OrganizationViewSet

app_name = 'organizations-api'

router = SimpleRouter()
router.register(r'members', MemberViewSet, basename='member')
router.register(r'invitations', InvitationViewSet, basename='invitation')
router.register(r'', OrganizationViewSet, basename='organization')

urlpatterns = [
    path('invitations/accept/', AcceptInvitationView.as_view(), name='invitation-accept'),
] + router.urls
