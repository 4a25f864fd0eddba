# apps/communication/urls.py

from apps.core.routers import UUIDRouter
from .views import NotificationViewSet

app_name = 'communication'

router = UUIDRouter()
router.register(r'', NotificationViewSet, basename='notification')

urlpatterns = router.urls
