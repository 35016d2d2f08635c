"""
Dashboard Signals - drop an organization's cached overview when the data
behind it changes.
"""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from fusion.models import FusionAlert, FusionScore, GovernanceAudit, TrustGraphNode
from integrations.models import Integration

from .services import OrganizationDashboardService


@receiver([post_save, post_delete], sender=Integration)
@receiver([post_save, post_delete], sender=FusionScore)
@receiver([post_save, post_delete], sender=FusionAlert)
@receiver([post_save, post_delete], sender=GovernanceAudit)
@receiver([post_save, post_delete], sender=TrustGraphNode)
def invalidate_organization_overview(sender, instance, **kwargs):
    if instance.organization_id:
        OrganizationDashboardService.invalidate(instance.organization_id)
