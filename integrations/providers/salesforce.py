"""
Salesforce Integration Provider

Collects CRM pipeline metrics with SOQL queries against the REST API.
"""

import logging
from typing import Dict

from .base import BaseIntegrationProvider, ConfigurationError

logger = logging.getLogger(__name__)


class SalesforceProvider(BaseIntegrationProvider):
    """
    Salesforce integration provider.

    Requires `instance_url` in the integration config.

    Metrics:
    - account_count, opportunity_count, open_opportunities, open_cases
    - opportunity_value: total amount of open opportunities
    - win_rate: won / closed opportunities, as a percentage
    """

    provider_name = 'salesforce'
    display_name = 'Salesforce'
    api_version = 'v58.0'
    metric_names = (
        'account_count', 'opportunity_count', 'open_opportunities',
        'opportunity_value', 'open_cases', 'win_rate',
    )

    @property
    def api_base_url(self) -> str:
        instance_url = self.config.get('instance_url')
        if not instance_url:
            raise ConfigurationError("Salesforce instance_url is not configured")
        return f"{instance_url.rstrip('/')}/services/data/{self.api_version}"

    def query(self, soql: str) -> Dict:
        return self.get_json('query', params={'q': soql})

    def count(self, soql: str) -> int:
        return int(self.query(soql).get('totalSize', 0))

    def aggregate(self, soql: str) -> float:
        records = self.query(soql).get('records', [])
        if not records:
            return 0.0
        return float(records[0].get('expr0') or 0.0)

    def collect_metrics(self) -> Dict[str, float]:
        won = self.count("SELECT COUNT() FROM Opportunity WHERE IsClosed = true AND IsWon = true")
        closed = self.count("SELECT COUNT() FROM Opportunity WHERE IsClosed = true")

        return {
            'account_count': float(self.count("SELECT COUNT() FROM Account")),
            'opportunity_count': float(self.count("SELECT COUNT() FROM Opportunity")),
            'open_opportunities': float(self.count("SELECT COUNT() FROM Opportunity WHERE IsClosed = false")),
            'opportunity_value': self.aggregate("SELECT SUM(Amount) FROM Opportunity WHERE IsClosed = false"),
            'open_cases': float(self.count("SELECT COUNT() FROM Case WHERE IsClosed = false")),
            'win_rate': round(won / closed * 100, 2) if closed else 0.0,
        }
