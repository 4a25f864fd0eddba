"""
ASGI config for the Smart Hostel project.

HTTP requests go to Django; websocket connections are routed to the
notification consumer behind session authentication.
"""

import os
import django
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.development')
django.setup()

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack

from config.routing import websocket_urlpatterns

# Application definition
application = ProtocolTypeRouter({
    # Django's ASGI application for HTTP requests
    'http': get_asgi_application(),

    # WebSocket connections with authentication
    'websocket': AuthMiddlewareStack(
        URLRouter(websocket_urlpatterns)
    ),
})
