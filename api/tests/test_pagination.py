"""
API Pagination Tests

Tests for the standard pagination class:
- Resolution through REST_FRAMEWORK settings
- DRF import order in a fresh interpreter
- Envelope shape of paginated responses
"""

import os
import subprocess
import sys

import pytest
from django.conf import settings
from rest_framework.settings import api_settings
from rest_framework.test import APIRequestFactory
from rest_framework.request import Request

from api.pagination import StandardPagination


# ============================================================================
# SETTINGS
# ============================================================================

class TestPaginationSetting:
    """Tests for DEFAULT_PAGINATION_CLASS resolution."""

    def test_setting_resolves(self):
        assert api_settings.DEFAULT_PAGINATION_CLASS is StandardPagination

    def test_viewsets_import_after_setup(self):
        """Test DRF viewsets import cleanly when the setting is resolved first."""
        env = dict(os.environ, DJANGO_SETTINGS_MODULE='core314.settings_test')
        result = subprocess.run(
            [sys.executable, '-c', 'import django; django.setup(); import rest_framework.viewsets'],
            cwd=settings.BASE_DIR,
            env=env,
            capture_output=True,
            text=True,
            timeout=60,
        )

        assert result.returncode == 0, result.stderr


# ============================================================================
# ENVELOPE
# ============================================================================

class TestPaginatedEnvelope:
    """Tests for the paginated response envelope."""

    def test_meta_pagination(self):
        request = Request(APIRequestFactory().get('/items/', {'page': 2, 'page_size': 10}))
        paginator = StandardPagination()

        page = paginator.paginate_queryset(list(range(25)), request)
        response = paginator.get_paginated_response(page)

        assert response.data['success'] is True
        assert response.data['data'] == list(range(10, 20))
        assert response.data['meta']['pagination']['count'] == 25
        assert response.data['meta']['pagination']['total_pages'] == 3
        assert response.data['meta']['pagination']['page'] == 2

    def test_page_size_capped(self):
        request = Request(APIRequestFactory().get('/items/', {'page_size': 500}))
        paginator = StandardPagination()

        page = paginator.paginate_queryset(list(range(150)), request)

        assert len(page) == 100
