"""
URL configuration for Core314 project.

Routes the admin site, health checks and the versioned REST API.
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.http import JsonResponse


# ==================== Health Check Endpoints ====================

def health_check(request):
    """
    Health check endpoint for load balancers and monitoring.
    Reports database and cache connectivity.
    """
    from django.db import connection
    from django.core.cache import cache
    import time

    health_status = {
        'status': 'healthy',
        'timestamp': time.time(),
        'version': getattr(settings, 'APP_VERSION', '1.0.0'),
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
        health_status['database'] = 'connected'
    except Exception as e:
        health_status['database'] = 'error'
        health_status['status'] = 'degraded'
        health_status['database_error'] = str(e)

    try:
        cache.set('health_check', 'ok', 1)
        if cache.get('health_check') == 'ok':
            health_status['cache'] = 'connected'
        else:
            health_status['cache'] = 'error'
            health_status['status'] = 'degraded'
    except Exception:
        health_status['cache'] = 'unavailable'

    status_code = 200 if health_status['status'] == 'healthy' else 503
    return JsonResponse(health_status, status=status_code)


def liveness_check(request):
    """Returns 200 if the application process is alive."""
    return JsonResponse({'alive': True}, status=200)


urlpatterns = [
    path('admin/', admin.site.urls),

    path('health/', health_check, name='health_check'),
    path('health/live/', liveness_check, name='liveness_check'),

    # API v1 (versioned API endpoints)
    path('api/', include('api.urls')),
]
