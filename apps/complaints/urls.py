# apps/complaints/urls.py

from apps.core.routers import UUIDRouter
from .views import ComplaintViewSet

app_name = 'complaints'

router = UUIDRouter()
router.register(r'', ComplaintViewSet, basename='complaint')

urlpatterns = router.urls
