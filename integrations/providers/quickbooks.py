"""
QuickBooks Online Integration Provider

Collects invoicing and customer metrics through the accounting API.
"""

import logging
from datetime import timedelta
from typing import Dict, List

from django.utils import timezone

from .base import BaseIntegrationProvider, ConfigurationError

logger = logging.getLogger(__name__)

INVOICE_WINDOW_DAYS = 90


class QuickBooksProvider(BaseIntegrationProvider):
    """
    QuickBooks integration provider.

    Requires `realm_id` in the integration config.

    Metrics (invoices from the last 90 days):
    - invoice_count, unpaid_invoices (balance > 0)
    - total_revenue: sum of invoice totals
    - customer_count: active customers
    """

    provider_name = 'quickbooks'
    display_name = 'QuickBooks'
    metric_names = ('invoice_count', 'unpaid_invoices', 'total_revenue', 'customer_count')

    @property
    def api_base_url(self) -> str:
        realm_id = self.config.get('realm_id')
        if not realm_id:
            raise ConfigurationError("QuickBooks realm_id is not configured")
        base = self.config.get('api_base', 'https://quickbooks.api.intuit.com/v3/company')
        return f"{base.rstrip('/')}/{realm_id}"

    def query(self, statement: str, entity: str) -> List[Dict]:
        data = self.get_json('query', params={'query': statement})
        return data.get('QueryResponse', {}).get(entity, [])

    def collect_metrics(self) -> Dict[str, float]:
        since = (timezone.now() - timedelta(days=INVOICE_WINDOW_DAYS)).date().isoformat()
        invoices = self.query(
            f"SELECT * FROM Invoice WHERE TxnDate >= '{since}' MAXRESULTS 1000", 'Invoice'
        )
        customers = self.query(
            "SELECT * FROM Customer WHERE Active = true MAXRESULTS 1000", 'Customer'
        )

        return {
            'invoice_count': float(len(invoices)),
            'unpaid_invoices': float(sum(1 for inv in invoices if float(inv.get('Balance') or 0) > 0)),
            'total_revenue': round(sum(float(inv.get('TotalAmt') or 0) for inv in invoices), 2),
            'customer_count': float(len(customers)),
        }
