# apps/resources/urls.py

from apps.core.routers import UUIDRouter
from .views import ResourceRequestViewSet, ResourceViewSet

app_name = 'resources'

router = UUIDRouter()
router.register(r'resources', ResourceViewSet, basename='resource')
router.register(r'resource-requests', ResourceRequestViewSet, basename='resource-request')

urlpatterns = router.urls
