"""
Integration Service Tests

Tests for integration tracking:
- Connect and disconnect with plan limits and encrypted credentials
- Polling outcomes (success, auth expiry, failures, rate limits)
- Metric history and latest values
- Celery polling tasks
- Admin tracking summary and the integrations API
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock, patch

import requests

from django.db import connection
from django.test import override_settings
from django.utils import timezone
from rest_framework import status

from api.exceptions import InvalidInputError, PlanLimitExceededError, ResourceAlreadyExistsError, ResourceStateError
from fusion.models import AuditLogEntry, FusionScore
from integrations.models import Integration, IntegrationCredential, IntegrationEvent, IntegrationMetric
from integrations.providers import AuthenticationError, RateLimitError, SyncError
from integrations.services import IntegrationService, IntegrationTrackingService
from integrations.tasks import poll_due_integrations, poll_integration

INTEGRATIONS_URL = '/api/v1/integrations/'
COLLECT = 'integrations.providers.slack.SlackProvider.collect_metrics'


def json_response(payload):
    response = MagicMock()
    response.status_code = 200
    response.headers = {}
    response.json.return_value = payload
    return response


@pytest.fixture
def slack(organization, integration_factory, integration_credential_factory):
    integration = integration_factory(organization=organization, provider='slack')
    integration_credential_factory(integration=integration, access_token='xoxb-secret')
    return integration


# ============================================================================
# CONNECT / DISCONNECT
# ============================================================================

@pytest.mark.django_db
class TestConnect:
    """Tests for IntegrationService.connect and disconnect."""

    def test_connect_stores_encrypted_credentials(self, organization, owner):
        integration = IntegrationService.connect(
            organization, 'slack', owner, credentials={'access_token': 'xoxb-plain'}
        )

        assert integration.status == Integration.Status.ACTIVE
        assert integration.connected_by == owner
        assert integration.next_poll_at is not None
        credentials = IntegrationCredential.objects.get(integration=integration)
        assert credentials.access_token == 'xoxb-plain'

        with connection.cursor() as cursor:
            cursor.execute(
                f'SELECT access_token FROM {IntegrationCredential._meta.db_table} WHERE id = %s',
                [credentials.pk],
            )
            stored = cursor.fetchone()[0]
        assert stored != 'xoxb-plain'

        assert integration.events.filter(event_type=IntegrationEvent.EventType.CONNECTED).exists()
        assert AuditLogEntry.objects.filter(action_type='integration_connected').exists()

    def test_unsupported_provider(self, organization, owner):
        with pytest.raises(InvalidInputError):
            IntegrationService.connect(organization, 'zoom', owner, credentials={'access_token': 'x'})

    def test_credentials_required(self, organization, owner):
        with pytest.raises(InvalidInputError):
            IntegrationService.connect(organization, 'slack', owner, credentials={})

    def test_already_connected(self, organization, owner, slack):
        with pytest.raises(ResourceAlreadyExistsError):
            IntegrationService.connect(organization, 'slack', owner, credentials={'access_token': 'x'})

    def test_reconnect_after_disconnect(self, organization, owner, slack):
        IntegrationService.disconnect(slack, owner)

        integration = IntegrationService.connect(organization, 'slack', owner, credentials={'api_key': 'new-key'})

        assert integration.pk == slack.pk
        assert integration.status == Integration.Status.ACTIVE
        assert integration.credentials.api_key == 'new-key'

    def test_plan_limit(self, organization, owner, integration_factory, plan_factory):
        organization.subscription.plan = plan_factory(max_integrations=2)
        organization.subscription.save()
        integration_factory(organization=organization, provider='trello')
        integration_factory(organization=organization, provider='intercom')

        with pytest.raises(PlanLimitExceededError):
            IntegrationService.connect(organization, 'slack', owner, credentials={'access_token': 'x'})

    def test_disconnect_wipes_credentials(self, owner, slack):
        IntegrationService.disconnect(slack, owner)

        slack.refresh_from_db()
        credentials = IntegrationCredential.objects.get(integration=slack)
        assert slack.status == Integration.Status.DISCONNECTED
        assert slack.next_poll_at is None
        assert credentials.access_token == ''

    def test_disconnect_twice(self, owner, slack):
        IntegrationService.disconnect(slack, owner)

        with pytest.raises(ResourceStateError):
            IntegrationService.disconnect(slack, owner)


# ============================================================================
# POLLING
# ============================================================================

@pytest.mark.django_db
class TestPoll:
    """Tests for IntegrationService.poll outcomes."""

    def test_success_records_metrics(self, slack):
        now = timezone.now()
        metrics = {'message_count': 42.0, 'active_channels': 3.0}

        with patch(COLLECT, return_value=metrics):
            result = IntegrationService.poll(slack, now=now)

        assert result.success is True
        slack.refresh_from_db()
        assert slack.last_polled_at == now
        assert slack.next_poll_at == now + timedelta(minutes=slack.poll_interval_minutes)
        assert slack.consecutive_failures == 0
        assert IntegrationMetric.objects.filter(integration=slack).count() == 2
        assert slack.events.filter(event_type=IntegrationEvent.EventType.POLL_SUCCESS).exists()

    def test_non_numeric_metrics_ignored(self, slack):
        rows = IntegrationService.record_metrics(slack, {'count': 3, 'flag': True, 'label': 'x'})

        assert [row.metric_name for row in rows] == ['count']

    def test_auth_failure_expires(self, slack):
        with patch(COLLECT, side_effect=AuthenticationError('token_revoked')):
            result = IntegrationService.poll(slack)

        assert result.success is False
        slack.refresh_from_db()
        assert slack.status == Integration.Status.EXPIRED
        assert slack.next_poll_at is None

    @override_settings(CORE314_MAX_POLL_FAILURES=2)
    def test_repeated_failures_mark_error(self, slack):
        with patch(COLLECT, side_effect=SyncError('boom')):
            IntegrationService.poll(slack)
            slack.refresh_from_db()
            assert slack.status == Integration.Status.ACTIVE
            assert slack.consecutive_failures == 1

            IntegrationService.poll(slack)

        slack.refresh_from_db()
        assert slack.status == Integration.Status.ERROR
        assert slack.last_error == 'boom'

    def test_success_resets_failures(self, slack):
        slack.consecutive_failures = 3
        slack.save()

        with patch(COLLECT, return_value={'message_count': 1.0}):
            IntegrationService.poll(slack)

        slack.refresh_from_db()
        assert slack.consecutive_failures == 0

    def test_rate_limit_reschedules_and_reraises(self, slack):
        now = timezone.now()

        with patch(COLLECT, side_effect=RateLimitError('slow down', retry_after=120)):
            with pytest.raises(RateLimitError):
                IntegrationService.poll(slack, now=now)

        slack.refresh_from_db()
        assert slack.next_poll_at == now + timedelta(seconds=120)
        assert slack.events.filter(event_type=IntegrationEvent.EventType.RATE_LIMITED).exists()

    def test_latest_metrics(self, slack, integration_metric_factory):
        now = timezone.now()
        integration_metric_factory(integration=slack, metric_name='message_count', value=10, calculated_at=now - timedelta(hours=1))
        integration_metric_factory(integration=slack, metric_name='message_count', value=20, calculated_at=now)

        latest = IntegrationService.latest_metrics(slack)

        assert latest['message_count']['value'] == 20

    def test_due_for_poll(self, slack, integration_factory, organization):
        slack.next_poll_at = timezone.now() - timedelta(minutes=1)
        slack.save()
        integration_factory(
            organization=organization, provider='trello',
            next_poll_at=timezone.now() + timedelta(hours=1),
        )
        integration_factory(organization=organization, provider='intercom', status='error')

        assert list(IntegrationService.due_for_poll()) == [slack]


@pytest.mark.django_db
class TestPollTasks:
    """Tests for the Celery polling tasks."""

    def test_poll_integration_updates_fusion_score(self, slack):
        with patch(COLLECT, return_value={'message_count': 500.0, 'active_channels': 10.0}):
            result = poll_integration(slack.pk)

        assert result['status'] == 'success'
        assert result['metrics_collected'] == 2
        assert FusionScore.objects.filter(integration=slack).exists()

    def test_poll_missing_integration(self):
        assert poll_integration(999999)['status'] == 'not_found'

    def test_poll_skips_inactive(self, slack):
        slack.status = Integration.Status.EXPIRED
        slack.save()

        assert poll_integration(slack.pk)['status'] == 'skipped'

    def test_poll_due_integrations_dispatches(self, slack):
        slack.next_poll_at = timezone.now() - timedelta(minutes=5)
        slack.save()

        with patch('integrations.tasks.poll_integration.delay') as mock_delay:
            result = poll_due_integrations()

        assert result['dispatched'] == 1
        mock_delay.assert_called_once_with(slack.pk)


# ============================================================================
# TRACKING
# ============================================================================

@pytest.mark.django_db
class TestIntegrationTracking:
    """Tests for the admin console tracking summary."""

    def test_summary(self, organization, integration_factory):
        now = timezone.now()
        integration_factory(organization=organization, provider='slack', last_polled_at=now)
        integration_factory(organization=organization, provider='trello', last_polled_at=now - timedelta(days=1))
        integration_factory(
            organization=organization, provider='intercom', status='error',
            consecutive_failures=5, last_error='boom',
        )

        summary = IntegrationTrackingService.get_summary(now=now)

        assert summary['total'] == 3
        assert summary['by_status'] == {'active': 2, 'error': 1}
        assert [row['provider'] for row in summary['stale']] == ['trello']
        assert [row['provider'] for row in summary['failing']] == ['intercom']
        org_row = summary['organizations'][0]
        assert org_row['total'] == 3
        assert org_row['errored'] == 1


# ============================================================================
# API
# ============================================================================

@pytest.mark.django_db
class TestIntegrationAPI:
    """Tests for the integrations endpoints."""

    def test_list_scoped_to_organization(self, member_client, slack, other_organization, integration_factory):
        integration_factory(organization=other_organization, provider='trello')

        response = member_client.get(INTEGRATIONS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert [row['provider'] for row in response.data['data']] == ['slack']
        assert response.data['data'][0]['has_credentials'] is True
        assert 'access_token' not in response.data['data'][0]

    def test_member_cannot_connect(self, member_client):
        response = member_client.post(
            INTEGRATIONS_URL, {'provider': 'slack', 'access_token': 'x'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_owner_connects(self, owner_client, organization):
        response = owner_client.post(
            INTEGRATIONS_URL,
            {'provider': 'salesforce', 'access_token': 'tok', 'config': {'instance_url': 'https://acme.my.salesforce.com'}},
            format='json',
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['data']['status'] == 'active'
        assert Integration.objects.filter(organization=organization, provider='salesforce').exists()

    def test_connect_requires_credentials(self, owner_client):
        response = owner_client.post(INTEGRATIONS_URL, {'provider': 'slack'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_poll_now(self, owner_client, slack):
        with patch(COLLECT, return_value={'message_count': 250.0}):
            response = owner_client.post(f'{INTEGRATIONS_URL}{slack.uuid}/poll/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['success'] is True
        assert response.data['data']['fusion']['fusion_score'] is not None

    def test_poll_rate_limited(self, owner_client, slack):
        with patch(COLLECT, side_effect=RateLimitError('slow', retry_after=30)):
            response = owner_client.post(f'{INTEGRATIONS_URL}{slack.uuid}/poll/')

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_connection_check(self, owner_client, slack):
        team = json_response({'ok': True, 'team': {'id': 'T1', 'name': 'Acme'}})

        with patch.object(requests.Session, 'request', return_value=team):
            response = owner_client.post(f'{INTEGRATIONS_URL}{slack.uuid}/test-connection/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['message'] == 'Connected to Acme'

    def test_connection_check_failure(self, owner_client, slack):
        revoked = json_response({'ok': False, 'error': 'token_revoked'})

        with patch.object(requests.Session, 'request', return_value=revoked):
            response = owner_client.post(f'{INTEGRATIONS_URL}{slack.uuid}/test-connection/')

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.data['error_code'] == 'EXTERNAL_SERVICE_ERROR'

    def test_poll_inactive(self, owner_client, slack):
        slack.status = Integration.Status.EXPIRED
        slack.save()

        response = owner_client.post(f'{INTEGRATIONS_URL}{slack.uuid}/poll/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_metrics_history_filter(self, member_client, slack, integration_metric_factory):
        integration_metric_factory(integration=slack, metric_name='message_count')
        integration_metric_factory(integration=slack, metric_name='active_channels')

        response = member_client.get(f'{INTEGRATIONS_URL}{slack.uuid}/metrics/', {'metric': 'message_count'})

        assert response.status_code == status.HTTP_200_OK
        assert [row['metric_name'] for row in response.data['data']] == ['message_count']

    def test_metrics_history_bad_days(self, member_client, slack):
        response = member_client.get(f'{INTEGRATIONS_URL}{slack.uuid}/metrics/', {'days': 'week'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_disconnect(self, owner_client, slack):
        response = owner_client.post(f'{INTEGRATIONS_URL}{slack.uuid}/disconnect/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['status'] == 'disconnected'
        assert response.data['data']['has_credentials'] is False

    def test_tracking_platform_admin_only(self, member_client):
        response = member_client.get(f'{INTEGRATIONS_URL}tracking/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
