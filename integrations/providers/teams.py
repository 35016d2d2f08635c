"""
Microsoft Teams Integration Provider

Collects collaboration metrics through Microsoft Graph.
"""

import logging
from typing import Dict, List

from .base import BaseIntegrationProvider, SyncError

logger = logging.getLogger(__name__)

TEAM_LIMIT = 5
CHAT_LIMIT = 5


class TeamsProvider(BaseIntegrationProvider):
    """
    Microsoft Teams integration provider.

    Metrics:
    - team_count: teams the account has joined
    - channel_count: channels across the first 5 teams
    - message_count: messages in the 5 most recent chats
    - active_users: distinct senders of those messages
    """

    provider_name = 'microsoft_teams'
    display_name = 'Microsoft Teams'
    api_base_url = 'https://graph.microsoft.com/v1.0'
    metric_names = ('team_count', 'channel_count', 'message_count', 'active_users')

    def _values(self, endpoint: str, params: Dict = None) -> List[Dict]:
        return self.get_json(endpoint, params=params).get('value', [])

    def collect_metrics(self) -> Dict[str, float]:
        teams = self._values('me/joinedTeams')

        channel_count = 0
        for team in teams[:TEAM_LIMIT]:
            try:
                channel_count += len(self._values(f"teams/{team['id']}/channels"))
            except SyncError as e:
                logger.warning(f"Skipping Teams team {team.get('id')}: {e}")

        chats = self._values('me/chats', params={'$top': 50})
        message_count = 0
        senders = set()
        for chat in chats[:CHAT_LIMIT]:
            try:
                messages = self._values(f"chats/{chat['id']}/messages", params={'$top': 50})
            except SyncError as e:
                logger.warning(f"Skipping Teams chat {chat.get('id')}: {e}")
                continue
            message_count += len(messages)
            for message in messages:
                sender = ((message.get('from') or {}).get('user') or {}).get('id')
                if sender:
                    senders.add(sender)

        return {
            'team_count': float(len(teams)),
            'channel_count': float(channel_count),
            'message_count': float(message_count),
            'active_users': float(len(senders)),
        }
