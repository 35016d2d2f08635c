"""
Slack Integration Provider

Collects workspace activity metrics through the Slack Web API.
"""

import logging
import time
from typing import Any, Dict, List, Tuple

from .base import AuthenticationError, BaseIntegrationProvider, IntegrationError, SyncError

logger = logging.getLogger(__name__)

AUTH_ERRORS = {'invalid_auth', 'not_authed', 'token_revoked', 'token_expired', 'account_inactive'}

HISTORY_CHANNEL_LIMIT = 5
HISTORY_WINDOW_SECONDS = 7 * 24 * 60 * 60


class SlackProvider(BaseIntegrationProvider):
    """
    Slack integration provider.

    Metrics:
    - channel_count: non-archived public and private channels
    - active_channels: channels the bot is a member of
    - message_count: messages in the last 7 days across up to 5 member channels
    - total_members: non-bot, non-deleted workspace users
    - active_members: distinct authors among those messages
    """

    provider_name = 'slack'
    display_name = 'Slack'
    api_base_url = 'https://slack.com/api'
    metric_names = ('channel_count', 'active_channels', 'message_count', 'total_members', 'active_members')

    def call(self, method: str, params: Dict = None) -> Dict[str, Any]:
        """Call a Web API method; Slack reports errors in the body with HTTP 200."""
        data = self.get_json(method, params=params)
        if not data.get('ok'):
            error = data.get('error', 'unknown_error')
            if error in AUTH_ERRORS:
                raise AuthenticationError(f"Slack authentication failed: {error}")
            raise SyncError(f"Slack API error on {method}: {error}")
        return data

    def _paginate(self, method: str, key: str, params: Dict) -> List[Dict]:
        items = []
        cursor = None

        while True:
            page_params = dict(params)
            if cursor:
                page_params['cursor'] = cursor

            data = self.call(method, params=page_params)
            items.extend(data.get(key, []))

            cursor = data.get('response_metadata', {}).get('next_cursor')
            if not cursor:
                break

        return items

    def get_team_info(self) -> Dict[str, Any]:
        team = self.call('team.info').get('team', {})
        return {'id': team.get('id'), 'name': team.get('name')}

    def test_connection(self) -> Tuple[bool, str]:
        try:
            team = self.get_team_info()
        except IntegrationError as e:
            return False, str(e)
        return True, f"Connected to {team.get('name')}"

    def list_channels(self) -> List[Dict]:
        return self._paginate(
            'conversations.list',
            'channels',
            {'types': 'public_channel,private_channel', 'limit': 200, 'exclude_archived': True},
        )

    def list_users(self) -> List[Dict]:
        users = self._paginate('users.list', 'members', {'limit': 200})
        return [user for user in users if not user.get('is_bot') and not user.get('deleted')]

    def channel_history(self, channel_id: str, oldest: int) -> List[Dict]:
        data = self.call(
            'conversations.history',
            params={'channel': channel_id, 'oldest': oldest, 'limit': 100},
        )
        return data.get('messages', [])

    def collect_metrics(self) -> Dict[str, float]:
        channels = self.list_channels()
        member_channels = [channel for channel in channels if channel.get('is_member')]

        oldest = int(time.time()) - HISTORY_WINDOW_SECONDS
        message_count = 0
        authors = set()
        for channel in member_channels[:HISTORY_CHANNEL_LIMIT]:
            try:
                messages = self.channel_history(channel['id'], oldest)
            except SyncError as e:
                logger.warning(f"Skipping Slack channel {channel.get('id')}: {e}")
                continue
            message_count += len(messages)
            authors.update(message['user'] for message in messages if message.get('user'))

        users = self.list_users()

        return {
            'channel_count': float(len(channels)),
            'active_channels': float(len(member_channels)),
            'message_count': float(message_count),
            'total_members': float(len(users)),
            'active_members': float(len(authors)),
        }
