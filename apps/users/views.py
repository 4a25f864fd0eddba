# apps/users/views.py

import logging

from django.contrib.auth.models import update_last_login
from django.db.models import Count, Q
from rest_framework import generics, mixins, permissions, status, viewsets
from rest_framework.authtoken.models import Token
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.communication.models import Notification
from apps.communication.services import NotificationService
from apps.core.exceptions import Forbidden, InvalidState
from apps.core.permissions import IsAdminRole, IsStaffMember
from .models import User
from .serializers import (
    AdminUserUpdateSerializer, ChangePasswordSerializer, LoginSerializer,
    ProfileUpdateSerializer, RegisterSerializer, UserSerializer
)

logger = logging.getLogger(__name__)


class RegisterView(generics.CreateAPIView):
    """
    Create a student account and return an API token for it.
    """
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        token, _ = Token.objects.get_or_create(user=user)

        NotificationService.create_notification(
            user,
            'Welcome to Smart Hostel!',
            'Your account has been created successfully. Start exploring the platform!',
            notification_type=Notification.Type.SYSTEM,
            category=Notification.Category.NEW,
        )
        logger.info(f"Registered user {user.email}")

        return Response(
            {'user': UserSerializer(user).data, 'token': token.key},
            status=status.HTTP_201_CREATED
        )


class LoginView(APIView):
    """Exchange email and password for an API token."""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']
        token, _ = Token.objects.get_or_create(user=user)
        update_last_login(None, user)
        logger.info(f"User {user.email} logged in")
        return Response({'user': UserSerializer(user).data, 'token': token.key})


class LogoutView(APIView):
    """Revoke the caller's API token."""

    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return Response({'message': 'Logged out successfully'})


class ProfileView(generics.RetrieveUpdateAPIView):
    """
    The signed-in user's own profile.
    """

    def get_object(self):
        return self.request.user

    def get_serializer_class(self):
        if self.request.method in ('PUT', 'PATCH'):
            return ProfileUpdateSerializer
        return UserSerializer

    def update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        super().update(request, *args, **kwargs)
        return Response(UserSerializer(self.get_object()).data)


class ChangePasswordView(APIView):

    def put(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = request.user
        user.set_password(serializer.validated_data['new_password'])
        user.save(update_fields=['password'])

        # Existing tokens die with the old password
        Token.objects.filter(user=user).delete()
        token = Token.objects.create(user=user)
        return Response({'message': 'Password changed successfully', 'token': token.key})


class DashboardView(APIView):
    """
    Personal overview: complaint and resource counts plus recent activity.
    """

    def get(self, request):
        from apps.complaints.models import Complaint
        from apps.complaints.serializers import ComplaintListSerializer
        from apps.communication.serializers import NotificationSerializer
        from apps.resources.models import Resource
        from apps.resources.serializers import ResourceListSerializer

        user = request.user
        complaints = Complaint.objects.filter(reported_by=user)
        owned = Resource.objects.filter(owner=user)
        borrowed = Resource.objects.filter(current_borrower=user)
        context = {'request': request}

        complaint_counts = complaints.aggregate(
            total=Count('id'),
            pending=Count('id', filter=Q(status=Complaint.Status.PENDING)),
            resolved=Count('id', filter=Q(status=Complaint.Status.RESOLVED)),
        )

        return Response({
            'stats': {
                'complaints': complaint_counts,
                'resources': {
                    'owned': owned.count(),
                    'available': owned.filter(availability=Resource.Availability.AVAILABLE).count(),
                    'borrowed': borrowed.count(),
                },
                'notifications': {
                    'unread': Notification.get_unread_count(user),
                },
            },
            'recent': {
                'complaints': ComplaintListSerializer(complaints.order_by('-created_at')[:5], many=True, context=context).data,
                'resources': ResourceListSerializer(owned.order_by('-created_at')[:5], many=True, context=context).data,
                'borrowed': ResourceListSerializer(borrowed.order_by('-created_at')[:5], many=True, context=context).data,
                'notifications': NotificationSerializer(
                    Notification.objects.filter(recipient=user).active()[:5], many=True
                ).data,
            },
        })


class AdminDashboardView(APIView):
    """
    Staff overview of users, complaints and resources with the latest activity.
    Wardens only see their own block.
    """
    permission_classes = [permissions.IsAuthenticated, IsStaffMember]

    def get(self, request):
        from apps.complaints.models import Complaint
        from apps.complaints.serializers import ComplaintListSerializer
        from apps.resources.models import Resource
        from apps.resources.serializers import ResourceListSerializer

        users = User.objects.filter(is_active=True)
        complaints = Complaint.objects.select_related('reported_by')
        resources = Resource.objects.select_related('owner')
        if request.user.is_warden:
            block = request.user.hostel_block
            users = users.filter(hostel_block=block)
            complaints = complaints.filter(hostel_block=block)
            resources = resources.filter(hostel_block=block)

        complaint_counts = complaints.aggregate(
            total=Count('id'),
            pending=Count('id', filter=Q(status=Complaint.Status.PENDING)),
            in_progress=Count('id', filter=Q(status=Complaint.Status.IN_PROGRESS)),
            awaiting_approval=Count('id', filter=Q(status=Complaint.Status.AWAITING_APPROVAL)),
            resolved=Count('id', filter=Q(status=Complaint.Status.RESOLVED)),
        )
        resource_counts = resources.aggregate(
            total=Count('id'),
            available=Count('id', filter=Q(availability=Resource.Availability.AVAILABLE)),
            borrowed=Count('id', filter=Q(availability=Resource.Availability.BORROWED)),
        )
        context = {'request': request}

        return Response({
            'overview': {
                'users': users.count(),
                'complaints': complaint_counts,
                'resources': resource_counts,
            },
            'recent': {
                'complaints': ComplaintListSerializer(
                    complaints.order_by('-created_at')[:10], many=True, context=context
                ).data,
                'resources': ResourceListSerializer(
                    resources.order_by('-created_at')[:10], many=True, context=context
                ).data,
            },
        })


class UserViewSet(mixins.ListModelMixin,
                  mixins.RetrieveModelMixin,
                  mixins.UpdateModelMixin,
                  mixins.DestroyModelMixin,
                  viewsets.GenericViewSet):
    """
    Staff directory of users. Wardens see their own block; admins see everyone
    and may change roles or deactivate accounts.
    """
    serializer_class = UserSerializer

    def get_permissions(self):
        if self.action in ('update', 'partial_update', 'destroy'):
            return [permissions.IsAuthenticated(), IsAdminRole()]
        if self.action == 'retrieve':
            return [permissions.IsAuthenticated()]
        return [permissions.IsAuthenticated(), IsStaffMember()]

    def get_queryset(self):
        queryset = User.objects.all()
        user = self.request.user

        if self.action == 'retrieve':
            # Anyone may look up a profile; the directory listing is staff only
            return queryset
        if user.is_warden:
            queryset = queryset.filter(hostel_block=user.hostel_block)

        params = self.request.query_params
        if params.get('role'):
            queryset = queryset.filter(role=params['role'])
        if params.get('hostel_block'):
            queryset = queryset.filter(hostel_block=params['hostel_block'])
        if params.get('is_active') is not None:
            queryset = queryset.filter(is_active=params['is_active'].lower() in ('true', '1'))
        search = params.get('search')
        if search:
            queryset = queryset.filter(
                Q(first_name__icontains=search) |
                Q(last_name__icontains=search) |
                Q(email__icontains=search) |
                Q(room_number__icontains=search)
            )
        return queryset.order_by('-date_joined')

    def get_serializer_class(self):
        if self.action in ('update', 'partial_update'):
            return AdminUserUpdateSerializer
        return UserSerializer

    def update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        super().update(request, *args, **kwargs)
        return Response(UserSerializer(self.get_object()).data)

    def perform_update(self, serializer):
        user = serializer.save()
        logger.info(f"Admin {self.request.user.email} updated user {user.email}")

    def perform_destroy(self, instance):
        """Accounts are deactivated, never removed, so history stays intact."""
        from apps.resources.models import Resource

        if instance.pk == self.request.user.pk:
            raise Forbidden('You cannot deactivate your own account.')
        if Resource.objects.filter(
            Q(owner=instance) | Q(current_borrower=instance),
            availability=Resource.Availability.BORROWED
        ).exists():
            raise InvalidState('Cannot deactivate a user with active borrowed resources.')

        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])
        Token.objects.filter(user=instance).delete()
        logger.info(f"Admin {self.request.user.email} deactivated user {instance.email}")

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """User counts by role, activity and block."""
        queryset = User.objects.all()
        if request.user.is_warden:
            queryset = queryset.filter(hostel_block=request.user.hostel_block)

        overview = queryset.aggregate(
            total=Count('id'),
            students=Count('id', filter=Q(role=User.Role.STUDENT)),
            wardens=Count('id', filter=Q(role=User.Role.WARDEN)),
            admins=Count('id', filter=Q(role=User.Role.ADMIN)),
            active=Count('id', filter=Q(is_active=True)),
            verified=Count('id', filter=Q(is_verified=True)),
        )
        overview['verification_rate'] = (
            round(overview['verified'] / overview['total'] * 100, 1) if overview['total'] else 0
        )
        block_breakdown = list(
            queryset.exclude(hostel_block='').values('hostel_block').annotate(count=Count('id')).order_by('hostel_block')
        )
        top_users = UserSerializer(
            queryset.filter(is_active=True).order_by('-reputation', '-total_lent')[:10], many=True
        ).data

        return Response({
            'overview': overview,
            'block_breakdown': block_breakdown,
            'top_users': top_users,
        })
