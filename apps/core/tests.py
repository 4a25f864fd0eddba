# apps/core/tests.py

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError
from django.http import Http404
from django.test import SimpleTestCase
from rest_framework.exceptions import NotAuthenticated, PermissionDenied
from rest_framework.exceptions import ValidationError

from .exceptions import Conflict, Forbidden, InvalidInput, InvalidState, api_exception_handler
from .routers import UUIDRouter
from .validators import room_number_validator, validate_image_list, validate_tag_list


def render(exc):
    return api_exception_handler(exc, {})


class ExceptionHandlerTestCase(SimpleTestCase):
    """Test cases for the shared error envelope"""

    def test_domain_errors(self):
        cases = [
            (Forbidden(), 403, 'forbidden'),
            (InvalidState('Only pending complaints can be edited'), 409, 'invalid_state'),
            (Conflict('Already upvoted', code='already_upvoted'), 409, 'already_upvoted'),
            (PermissionDenied(), 403, 'forbidden'),
            (NotAuthenticated(), 401, 'not_authenticated'),
            (Http404(), 404, 'not_found'),
            (DjangoPermissionDenied(), 403, 'forbidden'),
        ]
        for exc, status_code, kind in cases:
            with self.subTest(kind=kind):
                response = render(exc)
                self.assertEqual(response.status_code, status_code)
                self.assertEqual(response.data['status'], 'error')
                self.assertEqual(response.data['kind'], kind)
                self.assertEqual(response.data['errors'], [])

    def test_message_is_kept(self):
        response = render(InvalidState('Resource is currently borrowed'))
        self.assertEqual(response.data['message'], 'Resource is currently borrowed')

    def test_invalid_input_lists_field(self):
        response = render(InvalidInput('hostel_block', 'Hostel block is required'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['kind'], 'validation_error')
        self.assertEqual(response.data['errors'], [{'field': 'hostel_block', 'message': 'Hostel block is required'}])

    def test_nested_validation_errors_are_flattened(self):
        response = render(ValidationError({'title': ['Too short'], 'lending': {'duration': ['Too long']}}))
        self.assertEqual(response.data['errors'], [
            {'field': 'title', 'message': 'Too short'},
            {'field': 'lending.duration', 'message': 'Too long'},
        ])

    def test_django_validation_error(self):
        response = render(DjangoValidationError({'room_number': ['Bad room']}))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors'][0]['field'], 'room_number')

    def test_database_errors(self):
        with self.assertLogs('apps.core.exceptions', level='WARNING'):
            response = render(IntegrityError('UNIQUE constraint failed'))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['kind'], 'conflict')

        with self.assertLogs('apps.core.exceptions', level='ERROR'):
            response = render(DatabaseError('connection refused'))
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data['kind'], 'unavailable')

    def test_unhandled_exception_passes_through(self):
        self.assertIsNone(render(KeyError('boom')))


class UUIDRouterTestCase(SimpleTestCase):

    def test_detail_route_only_matches_uuids(self):
        from rest_framework import viewsets

        class ThingViewSet(viewsets.ViewSet):
            def retrieve(self, request, pk=None):
                pass

        router = UUIDRouter()
        router.register(r'things', ThingViewSet, basename='thing')
        detail = [url for url in router.urls if url.name == 'thing-detail'][0]

        self.assertIsNotNone(detail.pattern.match('things/3f2b8c4e-9a1d-4c55-8e7f-0b6a2d9c1e10/'))
        self.assertIsNone(detail.pattern.match('things/42/'))


class ValidatorsTestCase(SimpleTestCase):

    def test_room_number(self):
        room_number_validator('B204')
        for value in ('b204', '204', 'B2045', 'BB04'):
            with self.subTest(value=value), self.assertRaises(DjangoValidationError):
                room_number_validator(value)

    def test_image_list(self):
        validate_image_list(['https://cdn.example.com/leak.JPG', '/uploads/photo.png'])
        for value in ('https://example.com/a.jpg', ['ftp://example.com/a.jpg'], ['https://example.com/a.pdf'], [1]):
            with self.subTest(value=value), self.assertRaises(DjangoValidationError):
                validate_image_list(value)

    def test_tag_list(self):
        validate_tag_list(['plumbing', 'urgent'])
        with self.assertRaises(DjangoValidationError):
            validate_tag_list(['ok', 3])
