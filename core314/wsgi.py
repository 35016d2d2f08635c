"""
WSGI config for Core314 project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'core314.settings')

application = get_wsgi_application()
