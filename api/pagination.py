"""
API pagination returning the standard response envelope.

Kept free of viewset imports: DRF resolves DEFAULT_PAGINATION_CLASS while
rest_framework.generics is still loading.
"""

from django.utils import timezone

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardPagination(PageNumberPagination):
    """
    Standard page-number based pagination with configurable page size.

    Query params:
    - page: Page number (1-indexed)
    - page_size: Items per page (default: 20, max: 100)
    """
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100

    def get_paginated_response(self, data):
        return Response({
            "success": True,
            "data": data,
            "message": None,
            "errors": None,
            "meta": {
                "timestamp": timezone.now().isoformat(),
                "pagination": {
                    "count": self.page.paginator.count,
                    "page": self.page.number,
                    "page_size": self.get_page_size(self.request),
                    "total_pages": self.page.paginator.num_pages,
                    "next": self.get_next_link(),
                    "previous": self.get_previous_link(),
                }
            }
        })
