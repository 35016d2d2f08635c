"""
Trello Integration Provider

Collects board and card metrics through the Trello REST API.
"""

import logging
from typing import Dict

from .base import BaseIntegrationProvider, SyncError

logger = logging.getLogger(__name__)

BOARD_LIMIT = 5


class TrelloProvider(BaseIntegrationProvider):
    """
    Trello integration provider.

    Authenticates with the API key and token as query parameters.

    Metrics:
    - board_count: boards of the account
    - card_count, open_cards, closed_cards: cards on the first 5 boards
    """

    provider_name = 'trello'
    display_name = 'Trello'
    api_base_url = 'https://api.trello.com/1'
    metric_names = ('board_count', 'card_count', 'open_cards', 'closed_cards')

    def get_headers(self) -> Dict[str, str]:
        return {}

    def auth_params(self) -> Dict[str, str]:
        creds = self.get_credentials()
        return {'key': creds.get('api_key'), 'token': creds.get('access_token')}

    def collect_metrics(self) -> Dict[str, float]:
        auth = self.auth_params()
        boards = self.get_json('members/me/boards', params={**auth, 'fields': 'name,dateLastActivity'})

        card_count = open_cards = closed_cards = 0
        for board in boards[:BOARD_LIMIT]:
            try:
                cards = self.get_json(f"boards/{board['id']}/cards", params={**auth, 'fields': 'closed'})
            except SyncError as e:
                logger.warning(f"Skipping Trello board {board.get('id')}: {e}")
                continue
            card_count += len(cards)
            for card in cards:
                if card.get('closed'):
                    closed_cards += 1
                else:
                    open_cards += 1

        return {
            'board_count': float(len(boards)),
            'card_count': float(card_count),
            'open_cards': float(open_cards),
            'closed_cards': float(closed_cards),
        }
