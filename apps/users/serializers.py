# apps/users/serializers.py

import re

from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import User


def validate_password_strength(value):
    """At least one lowercase letter, one uppercase letter and one digit."""
    if not re.search(r'[a-z]', value) or not re.search(r'[A-Z]', value) or not re.search(r'\d', value):
        raise serializers.ValidationError(
            'Password must contain at least one lowercase letter, one uppercase letter, and one number.'
        )
    return value


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Compact user representation nested inside complaints, resources and notifications.
    """
    name = serializers.CharField(source='full_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'role', 'hostel_block', 'room_number']
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for the User model (own profile and staff views).
    """
    full_name = serializers.CharField(read_only=True)
    full_address = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'role',
            'hostel_block', 'room_number', 'full_address', 'phone_number',
            'is_verified', 'is_active', 'reputation', 'total_borrowed',
            'total_lent', 'date_joined', 'last_login'
        ]
        read_only_fields = [
            'id', 'email', 'role', 'is_verified', 'is_active', 'reputation',
            'total_borrowed', 'total_lent', 'date_joined', 'last_login'
        ]


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Fields a user may change on their own profile."""

    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'hostel_block', 'room_number', 'phone_number']


class AdminUserUpdateSerializer(serializers.ModelSerializer):
    """Fields an admin may change on any account."""

    class Meta:
        model = User
        fields = ['role', 'hostel_block', 'room_number', 'is_active', 'is_verified', 'reputation']

    def validate(self, attrs):
        role = attrs.get('role', self.instance.role if self.instance else None)
        block = attrs.get('hostel_block', self.instance.hostel_block if self.instance else '')
        if role == User.Role.WARDEN and not block:
            raise serializers.ValidationError({'hostel_block': 'Wardens must be assigned to a hostel block.'})
        return attrs


class RegisterSerializer(serializers.ModelSerializer):
    """
    Self-service registration. New accounts are always students; staff roles are
    granted by an admin afterwards.
    """
    password = serializers.CharField(write_only=True, min_length=6, style={'input_type': 'password'})

    class Meta:
        model = User
        fields = ['email', 'password', 'first_name', 'last_name', 'hostel_block', 'room_number', 'phone_number']
        extra_kwargs = {
            'hostel_block': {'required': True, 'allow_blank': False},
            'room_number': {'required': True, 'allow_blank': False},
        }

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('User with this email already exists')
        return value

    def validate_password(self, value):
        validate_password_strength(value)
        validate_password(value)
        return value

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, role=User.Role.STUDENT, **validated_data)


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={'input_type': 'password'})

    def validate(self, attrs):
        user = authenticate(
            request=self.context.get('request'),
            username=attrs['email'].lower(),
            password=attrs['password']
        )
        if user is None:
            raise serializers.ValidationError('Invalid email or password', code='authorization')
        attrs['user'] = user
        return attrs


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=6)

    def validate_current_password(self, value):
        if not self.context['request'].user.check_password(value):
            raise serializers.ValidationError('Current password is incorrect')
        return value

    def validate_new_password(self, value):
        validate_password_strength(value)
        validate_password(value, user=self.context['request'].user)
        return value
