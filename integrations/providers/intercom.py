"""
Intercom Integration Provider

Collects support conversation metrics through the Intercom API.
"""

import logging
from typing import Dict

from .base import BaseIntegrationProvider

logger = logging.getLogger(__name__)


class IntercomProvider(BaseIntegrationProvider):
    """
    Intercom integration provider.

    Metrics (most recent page of conversations):
    - conversation_count
    - open_conversations, closed_conversations, snoozed_conversations
    """

    provider_name = 'intercom'
    display_name = 'Intercom'
    api_base_url = 'https://api.intercom.io'
    metric_names = (
        'conversation_count', 'open_conversations',
        'closed_conversations', 'snoozed_conversations',
    )

    def collect_metrics(self) -> Dict[str, float]:
        data = self.get_json('conversations', params={'per_page': 150})
        conversations = data.get('conversations', [])

        states = {'open': 0, 'closed': 0, 'snoozed': 0}
        for conversation in conversations:
            state = conversation.get('state')
            if state in states:
                states[state] += 1

        return {
            'conversation_count': float(len(conversations)),
            'open_conversations': float(states['open']),
            'closed_conversations': float(states['closed']),
            'snoozed_conversations': float(states['snoozed']),
        }
