"""
Integration Services for Third-Party Integrations.

Provides:
- IntegrationService: connect, disconnect, poll and metric recording
- IntegrationTrackingService: platform-wide integration health for the
  admin console

Credentials are supplied by the caller (OAuth handshakes happen outside
this service); they are stored encrypted on IntegrationCredential.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Max, Q
from django.utils import timezone

from api.exceptions import InvalidInputError, ResourceAlreadyExistsError, ResourceStateError
from billing.enforcement import ensure_can_add_integration
from fusion.audit import log_audit_event

from .models import Integration, IntegrationCredential, IntegrationEvent, IntegrationMetric
from .providers import (
    AuthenticationError,
    IntegrationError,
    RateLimitError,
    get_provider,
    is_supported,
)

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ('access_token', 'refresh_token', 'api_key')


@dataclass
class PollResult:
    """Result of a poll operation."""
    success: bool
    metrics: Dict[str, float] = field(default_factory=dict)
    error_message: Optional[str] = None
    status: Optional[str] = None


def _max_failures() -> int:
    return getattr(settings, 'CORE314_MAX_POLL_FAILURES', 5)


class IntegrationService:
    """
    Core integration management.
    """

    @staticmethod
    def log_event(integration: Integration, event_type: str, message: str = '', details: dict = None) -> IntegrationEvent:
        return IntegrationEvent.objects.create(
            integration=integration,
            event_type=event_type,
            message=message,
            details=details or {},
        )

    @classmethod
    @transaction.atomic
    def connect(
        cls,
        organization,
        provider: str,
        user,
        credentials: Dict[str, Any],
        config: Optional[Dict[str, Any]] = None,
        name: str = '',
        poll_interval_minutes: Optional[int] = None,
    ) -> Integration:
        """
        Connect a provider for an organization.

        Raises:
            InvalidInputError: unsupported provider or missing credentials
            ResourceAlreadyExistsError: provider already connected
            PlanLimitExceededError: integration limit reached
        """
        if not is_supported(provider):
            raise InvalidInputError(detail=f"Provider '{provider}' is not supported.")

        credentials = {key: credentials.get(key) or '' for key in CREDENTIAL_FIELDS + ('expires_at',)}
        if not credentials['access_token'] and not credentials['api_key']:
            raise InvalidInputError(detail='An access token or API key is required.')

        integration = Integration.objects.filter(organization=organization, provider=provider).first()
        if integration is not None and integration.status != Integration.Status.DISCONNECTED:
            raise ResourceAlreadyExistsError(
                resource_type='integration',
                detail=f"{integration.display_name} is already connected."
            )

        ensure_can_add_integration(organization)

        now = timezone.now()
        if integration is None:
            integration = Integration(organization=organization, provider=provider)
        integration.name = name or integration.name
        integration.config = config or {}
        if poll_interval_minutes:
            integration.poll_interval_minutes = poll_interval_minutes
        integration.status = Integration.Status.ACTIVE
        integration.connected_by = user
        integration.connected_at = now
        integration.consecutive_failures = 0
        integration.last_error = ''
        integration.next_poll_at = now
        integration.save()

        IntegrationCredential.objects.update_or_create(
            integration=integration,
            defaults={
                'access_token': credentials['access_token'],
                'refresh_token': credentials['refresh_token'],
                'api_key': credentials['api_key'],
                'expires_at': credentials['expires_at'] or None,
            },
        )

        cls.log_event(integration, IntegrationEvent.EventType.CONNECTED, f"Connected by {user.email}")
        log_audit_event(
            action_type='integration_connected',
            decision_summary=f"{integration.display_name} connected",
            organization=organization,
            user=user,
            triggered_by='integrations',
            system_context={'integration': str(integration.uuid), 'provider': provider},
        )
        logger.info(f"Integration {provider} connected for {organization.slug}")
        return integration

    @classmethod
    @transaction.atomic
    def disconnect(cls, integration: Integration, user) -> Integration:
        """Wipe credentials and stop polling."""
        if integration.status == Integration.Status.DISCONNECTED:
            raise ResourceStateError(current_state=integration.status, detail='Integration is already disconnected.')

        try:
            integration.credentials.wipe()
        except IntegrationCredential.DoesNotExist:
            logger.debug(f"Integration {integration.pk} has no stored credentials")

        integration.status = Integration.Status.DISCONNECTED
        integration.next_poll_at = None
        integration.save(update_fields=['status', 'next_poll_at', 'updated_at'])

        cls.log_event(integration, IntegrationEvent.EventType.DISCONNECTED, f"Disconnected by {user.email}")
        log_audit_event(
            action_type='integration_disconnected',
            decision_summary=f"{integration.display_name} disconnected",
            organization=integration.organization,
            user=user,
            triggered_by='integrations',
            system_context={'integration': str(integration.uuid)},
        )
        return integration

    @staticmethod
    def record_metrics(integration: Integration, metrics: Dict[str, Any], now=None) -> List[IntegrationMetric]:
        """Store one history row per numeric metric, all with the same timestamp."""
        now = now or timezone.now()
        rows = []
        for name, value in metrics.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.debug(f"Ignoring non-numeric metric {name} for integration {integration.pk}")
                continue
            rows.append(IntegrationMetric(
                integration=integration,
                metric_name=name,
                value=float(value),
                calculated_at=now,
            ))
        return IntegrationMetric.objects.bulk_create(rows)

    @staticmethod
    def latest_metrics(integration: Integration) -> Dict[str, Dict[str, Any]]:
        latest = {}
        for metric in integration.metrics.order_by('metric_name', '-calculated_at'):
            if metric.metric_name not in latest:
                latest[metric.metric_name] = {
                    'value': metric.value,
                    'calculated_at': metric.calculated_at,
                }
        return latest

    @staticmethod
    def metrics_history(integration: Integration, metric_name: str = None, since=None):
        queryset = integration.metrics.all()
        if metric_name:
            queryset = queryset.filter(metric_name=metric_name)
        if since:
            queryset = queryset.filter(calculated_at__gte=since)
        return queryset.order_by('-calculated_at')

    @classmethod
    def poll(cls, integration: Integration, now=None) -> PollResult:
        """
        Collect metrics from the provider and record them.

        Authentication failures mark the integration expired; other failures
        count towards CORE314_MAX_POLL_FAILURES, after which it is marked as
        errored. Rate limits are recorded and re-raised for the caller to
        retry.
        """
        now = now or timezone.now()
        integration.last_polled_at = now

        try:
            metrics = get_provider(integration).collect_metrics()
        except RateLimitError as e:
            retry_after = e.retry_after or 60
            integration.next_poll_at = now + timedelta(seconds=retry_after)
            integration.save(update_fields=['last_polled_at', 'next_poll_at', 'updated_at'])
            cls.log_event(
                integration, IntegrationEvent.EventType.RATE_LIMITED, str(e), {'retry_after': retry_after}
            )
            logger.warning(f"Integration {integration.pk} rate limited, retry after {retry_after}s")
            raise
        except AuthenticationError as e:
            integration.status = Integration.Status.EXPIRED
            integration.last_error = str(e)
            integration.next_poll_at = None
            integration.save(update_fields=['status', 'last_error', 'last_polled_at', 'next_poll_at', 'updated_at'])
            cls.log_event(integration, IntegrationEvent.EventType.AUTH_EXPIRED, str(e))
            logger.warning(f"Integration {integration.pk} authorization expired: {e}")
            return PollResult(success=False, error_message=str(e), status=integration.status)
        except IntegrationError as e:
            integration.consecutive_failures += 1
            integration.last_error = str(e)
            if integration.consecutive_failures >= _max_failures():
                integration.status = Integration.Status.ERROR
                integration.next_poll_at = None
            else:
                integration.schedule_next_poll(now)
            integration.save(update_fields=[
                'status', 'consecutive_failures', 'last_error',
                'last_polled_at', 'next_poll_at', 'updated_at',
            ])
            cls.log_event(
                integration,
                IntegrationEvent.EventType.POLL_FAILED,
                str(e),
                {'consecutive_failures': integration.consecutive_failures},
            )
            logger.error(f"Polling integration {integration.pk} failed: {e}")
            return PollResult(success=False, error_message=str(e), status=integration.status)

        cls.record_metrics(integration, metrics, now=now)
        integration.status = Integration.Status.ACTIVE
        integration.consecutive_failures = 0
        integration.last_error = ''
        integration.schedule_next_poll(now)
        integration.save(update_fields=[
            'status', 'consecutive_failures', 'last_error',
            'last_polled_at', 'next_poll_at', 'updated_at',
        ])
        cls.log_event(
            integration,
            IntegrationEvent.EventType.POLL_SUCCESS,
            f"Collected {len(metrics)} metrics",
            {'metrics': sorted(metrics)},
        )
        return PollResult(success=True, metrics=metrics, status=integration.status)

    @staticmethod
    def due_for_poll(now=None):
        now = now or timezone.now()
        return Integration.objects.filter(
            status=Integration.Status.ACTIVE,
        ).filter(
            Q(next_poll_at__isnull=True) | Q(next_poll_at__lte=now)
        )


class IntegrationTrackingService:
    """Integration health across all organizations (admin console)."""

    @staticmethod
    def get_summary(now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        integrations = Integration.objects.select_related('organization')

        by_provider = Counter(integrations.values_list('provider', flat=True))
        by_status = Counter(integrations.values_list('status', flat=True))

        active = [i for i in integrations.filter(status=Integration.Status.ACTIVE)]
        stale = [
            {
                'uuid': str(i.uuid),
                'provider': i.provider,
                'organization': i.organization.slug,
                'last_polled_at': i.last_polled_at,
            }
            for i in active
            if i.is_stale(now)
        ]

        failing = [
            {
                'uuid': str(i.uuid),
                'provider': i.provider,
                'organization': i.organization.slug,
                'status': i.status,
                'consecutive_failures': i.consecutive_failures,
                'last_error': i.last_error,
            }
            for i in integrations.filter(
                Q(status=Integration.Status.ERROR) | Q(consecutive_failures__gt=0)
            ).exclude(status=Integration.Status.DISCONNECTED)
        ]

        return {
            'total': sum(by_provider.values()),
            'by_provider': dict(by_provider),
            'by_status': dict(by_status),
            'stale': stale,
            'failing': failing,
            'organizations': IntegrationTrackingService.per_organization(),
        }

    @staticmethod
    def per_organization() -> List[Dict[str, Any]]:
        rows = (
            Integration.objects
            .values('organization__slug', 'organization__name')
            .annotate(
                total=Count('id'),
                active=Count('id', filter=Q(status=Integration.Status.ACTIVE)),
                errored=Count('id', filter=Q(status__in=[Integration.Status.ERROR, Integration.Status.EXPIRED])),
                last_polled_at=Max('last_polled_at'),
            )
            .order_by('organization__name')
        )
        return [
            {
                'organization': row['organization__slug'],
                'name': row['organization__name'],
                'total': row['total'],
                'active': row['active'],
                'errored': row['errored'],
                'last_polled_at': row['last_polled_at'],
            }
            for row in rows
        ]
