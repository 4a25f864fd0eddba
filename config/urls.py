from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    # Admin site
    path('admin/', admin.site.urls),

    # Authentication, profiles and user management
    path('api/', include('apps.users.urls')),

    # Complaints (lifecycle, upvotes, feedback, stats)
    path('api/complaints/', include('apps.complaints.urls')),

    # Resource sharing and resource requests
    path('api/', include('apps.resources.urls')),

    # Notifications
    path('api/notifications/', include('apps.communication.urls')),
]

# Admin site customization
admin.site.site_header = 'Smart Hostel Administration'
admin.site.site_title = 'Smart Hostel Admin'
admin.site.index_title = 'Welcome to Smart Hostel'
