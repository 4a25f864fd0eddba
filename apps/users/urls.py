# apps/users/urls.py

from django.urls import path

from apps.core.routers import UUIDRouter
from . import views

app_name = 'users'

router = UUIDRouter()
router.register(r'users', views.UserViewSet, basename='user')

urlpatterns = [
    # Authentication
    path('auth/register/', views.RegisterView.as_view(), name='register'),
    path('auth/login/', views.LoginView.as_view(), name='login'),
    path('auth/logout/', views.LogoutView.as_view(), name='logout'),
    path('auth/profile/', views.ProfileView.as_view(), name='profile'),
    path('auth/change-password/', views.ChangePasswordView.as_view(), name='change_password'),

    # Personal dashboard
    path('users/dashboard/', views.DashboardView.as_view(), name='dashboard'),
    path('users/admin-dashboard/', views.AdminDashboardView.as_view(), name='admin_dashboard'),
] + router.urls
