"""
WebSocket routing configuration for the hostel backend.
"""

from django.urls import path

from apps.communication.consumers import NotificationConsumer

# Define WebSocket URL patterns
websocket_urlpatterns = [
    # Real-time notifications WebSocket
    path('ws/notifications/', NotificationConsumer.as_asgi()),
]
