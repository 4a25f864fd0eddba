# apps/communication/tests.py

from datetime import timedelta
from io import StringIO
from unittest import mock

from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from .consumers import NotificationConsumer
from .models import Notification
from .services import NotificationBatch, NotificationService, notification_group_name

User = get_user_model()


def make_user(email, role=User.Role.STUDENT, block='A', room='A101'):
    return User.objects.create_user(
        email=email,
        password='Passw0rd',
        first_name=email.split('@')[0].title(),
        role=role,
        hostel_block=block,
        room_number=room,
    )


class NotificationServiceTestCase(TestCase):
    """Test cases for NotificationService"""

    def setUp(self):
        self.user = make_user('resident@example.com')
        self.other = make_user('other@example.com', room='A102')

    def test_create_notification(self):
        notification = NotificationService.create_notification(
            self.user,
            'Complaint Status Updated',
            'Your complaint is now in progress.',
            notification_type=Notification.Type.COMPLAINT,
            category=Notification.Category.UPDATE,
            related_entity=self.other,
            related_entity_type=Notification.EntityType.USER,
        )
        self.assertIsNotNone(notification)
        self.assertEqual(notification.recipient, self.user)
        self.assertEqual(notification.related_entity_id, self.other.pk)
        self.assertFalse(notification.is_read)
        self.assertFalse(notification.is_expired)
        self.assertIsNotNone(notification.expires_at)

    def test_long_text_is_truncated(self):
        notification = NotificationService.create_notification(self.user, 'T' * 150, 'M' * 400)
        self.assertEqual(len(notification.title), 100)
        self.assertEqual(len(notification.message), 300)

    def test_failure_returns_none(self):
        with mock.patch.object(Notification.objects, 'create', side_effect=DatabaseError('down')):
            with self.assertLogs('apps.communication.services', level='ERROR'):
                result = NotificationService.create_notification(self.user, 'Title', 'Message')
        self.assertIsNone(result)
        self.assertFalse(Notification.objects.exists())

    def test_broadcast_counts(self):
        results = NotificationService.broadcast([self.user, self.other], 'Water outage', 'No water 2-4pm.')
        self.assertEqual(results, {'created': 2, 'failed': 0})
        self.assertEqual(Notification.objects.count(), 2)

    @override_settings(NOTIFICATION_PUSH_ENABLED=True)
    def test_push_sends_to_recipient_group(self):
        channel_layer = mock.MagicMock()
        with mock.patch('apps.communication.services.get_channel_layer', return_value=channel_layer), \
                mock.patch('apps.communication.services.async_to_sync', side_effect=lambda fn: fn):
            notification = NotificationService.create_notification(self.user, 'Hello', 'World')

        channel_layer.group_send.assert_called_once()
        group, event = channel_layer.group_send.call_args[0]
        self.assertEqual(group, notification_group_name(self.user.pk))
        self.assertEqual(event['type'], 'send_notification')
        self.assertEqual(event['notification']['id'], str(notification.pk))

    def test_push_disabled(self):
        notification = NotificationService.create_notification(self.user, 'Hello', 'World')
        self.assertFalse(NotificationService.push(notification))

    def test_cleanup_expired(self):
        NotificationService.create_notification(self.user, 'Old', 'Expired', expires_at=timezone.now() - timedelta(days=1))
        NotificationService.create_notification(self.user, 'New', 'Still valid')
        self.assertEqual(NotificationService.cleanup_expired(), 1)
        self.assertEqual(list(Notification.objects.values_list('title', flat=True)), ['New'])


class NotificationBatchTestCase(TestCase):
    """Test cases for deferred notification batches"""

    def setUp(self):
        self.user = make_user('resident@example.com')

    def test_nothing_written_until_commit(self):
        batch = NotificationBatch()
        batch.add(self.user, 'First', 'One')
        batch.add(None, 'Skipped', 'No recipient')
        batch.add(self.user, 'Second', 'Two', priority=Notification.Priority.HIGH)
        self.assertEqual(len(batch), 2)

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            batch.dispatch_on_commit()
        self.assertEqual(len(callbacks), 1)
        self.assertFalse(Notification.objects.exists())

        callbacks[0]()
        self.assertEqual(Notification.objects.count(), 2)
        self.assertEqual(Notification.objects.get(title='Second').priority, Notification.Priority.HIGH)
        self.assertEqual(len(batch), 0)

    def test_one_failure_does_not_stop_the_rest(self):
        batch = NotificationBatch()
        batch.add(self.user, 'Broken', 'Message', metadata=object())
        batch.add(self.user, 'Fine', 'Message')

        with self.assertLogs('apps.communication.services', level='ERROR'):
            created = batch.dispatch()
        self.assertEqual(created, 1)
        self.assertEqual(list(Notification.objects.values_list('title', flat=True)), ['Fine'])

    def test_empty_batch_registers_nothing(self):
        with self.captureOnCommitCallbacks() as callbacks:
            NotificationBatch().dispatch_on_commit()
        self.assertEqual(callbacks, [])


class CleanupNotificationsCommandTestCase(TestCase):
    """Test cases for the cleanup_notifications management command"""

    def setUp(self):
        user = make_user('resident@example.com')
        NotificationService.create_notification(user, 'Old', 'Expired', expires_at=timezone.now() - timedelta(hours=1))
        NotificationService.create_notification(user, 'New', 'Valid')

    def test_dry_run_keeps_notifications(self):
        out = StringIO()
        call_command('cleanup_notifications', '--dry-run', stdout=out)
        self.assertIn('1 expired notifications would be deleted', out.getvalue())
        self.assertEqual(Notification.objects.count(), 2)

    def test_deletes_expired(self):
        out = StringIO()
        call_command('cleanup_notifications', stdout=out)
        self.assertIn('Deleted 1 expired notifications', out.getvalue())
        self.assertEqual(Notification.objects.count(), 1)


class NotificationAPITestCase(APITestCase):
    """Test cases for the notification endpoints"""

    def setUp(self):
        self.user = make_user('resident@example.com')
        self.neighbour = make_user('neighbour@example.com', room='A102')
        self.block_b = make_user('bee@example.com', block='B', room='B101')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.admin = make_user('admin@example.com', role=User.Role.ADMIN, block='', room='')

        self.unread = NotificationService.create_notification(
            self.user, 'New Borrow Request', 'Someone wants your kettle.',
            notification_type=Notification.Type.RESOURCE, category=Notification.Category.BORROW_REQUEST,
        )
        self.read = NotificationService.create_notification(self.user, 'Welcome', 'Hello there.')
        self.read.mark_as_read()
        NotificationService.create_notification(
            self.user, 'Expired', 'Gone.', expires_at=timezone.now() - timedelta(days=1)
        )
        NotificationService.create_notification(self.neighbour, 'Not yours', 'Private.')

    def test_list_excludes_expired_and_foreign(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get('/api/notifications/')
        self.assertEqual(response.status_code, 200)
        titles = {item['title'] for item in response.data['results']}
        self.assertEqual(titles, {'New Borrow Request', 'Welcome'})

    def test_list_filters(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get('/api/notifications/', {'is_read': 'false'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/notifications/', {'type': 'resource', 'category': 'borrow-request'})
        self.assertEqual(response.data['results'][0]['id'], str(self.unread.pk))

    def test_requires_authentication(self):
        response = self.client.get('/api/notifications/')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['kind'], 'not_authenticated')

    def test_unread_count_and_read_toggle(self):
        self.client.force_authenticate(user=self.user)
        self.assertEqual(self.client.get('/api/notifications/unread-count/').data['unread_count'], 1)

        response = self.client.put(f'/api/notifications/{self.unread.pk}/read/')
        self.assertTrue(response.data['is_read'])
        self.assertIsNotNone(response.data['read_at'])
        self.assertEqual(self.client.get('/api/notifications/unread-count/').data['unread_count'], 0)

        response = self.client.put(f'/api/notifications/{self.unread.pk}/unread/')
        self.assertFalse(response.data['is_read'])
        self.assertIsNone(response.data['read_at'])

    def test_cannot_read_someone_elses_notification(self):
        foreign = Notification.objects.get(recipient=self.neighbour)
        self.client.force_authenticate(user=self.user)
        response = self.client.put(f'/api/notifications/{foreign.pk}/read/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_mark_all_read(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.put('/api/notifications/mark-all-read/')
        self.assertEqual(response.data['updated_count'], 2)
        self.assertEqual(Notification.get_unread_count(self.user), 0)

    def test_delete_read_and_single(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.delete('/api/notifications/read/')
        self.assertEqual(response.data['deleted_count'], 1)
        self.assertFalse(Notification.objects.filter(pk=self.read.pk).exists())

        response = self.client.delete(f'/api/notifications/{self.unread.pk}/')
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Notification.objects.filter(pk=self.unread.pk).exists())

    def test_students_cannot_create(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/notifications/', {
            'recipient': str(self.neighbour.pk), 'title': 'Hi', 'message': 'Hello'
        }, format='json')
        self.assertEqual(response.status_code, 403)

    def test_warden_creates_for_own_block_only(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.post('/api/notifications/', {
            'recipient': str(self.neighbour.pk), 'title': 'Room inspection', 'message': 'Tomorrow at 10.'
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['sender']['email'], 'warden@example.com')

        response = self.client.post('/api/notifications/', {
            'recipient': str(self.block_b.pk), 'title': 'Room inspection', 'message': 'Tomorrow at 10.'
        }, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['kind'], 'forbidden')

    def test_broadcast_by_role(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/notifications/broadcast/', {
            'title': 'Fire drill', 'message': 'Assemble at the main gate.', 'role': 'student'
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['sent_count'], 3)
        self.assertTrue(Notification.objects.filter(recipient=self.block_b, title='Fire drill').exists())

    def test_warden_broadcast_is_limited_to_block(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.post('/api/notifications/broadcast/', {
            'title': 'Fire drill', 'message': 'Assemble at the main gate.', 'role': 'student'
        }, format='json')
        self.assertEqual(response.data['sent_count'], 2)
        self.assertFalse(Notification.objects.filter(recipient=self.block_b, title='Fire drill').exists())

    def test_broadcast_needs_an_audience(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/notifications/broadcast/', {
            'title': 'Fire drill', 'message': 'Assemble at the main gate.'
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors'][0]['field'], 'recipients')


class NotificationConsumerTestCase(TestCase):
    """Test cases for the notification websocket"""

    def setUp(self):
        self.user = make_user('resident@example.com')
        NotificationService.create_notification(self.user, 'Return Requested', 'Please return the kettle.')

    async def test_anonymous_connection_is_refused(self):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = AnonymousUser()
        connected, _ = await communicator.connect()
        self.assertFalse(connected)

    async def test_connect_sends_unread_state(self):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = self.user
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        self.assertEqual(await communicator.receive_json_from(), {'type': 'unread_count', 'count': 1})
        message = await communicator.receive_json_from()
        self.assertEqual(message['notification']['title'], 'Return Requested')

        await communicator.send_json_to({'type': 'mark_all_read'})
        self.assertEqual(await communicator.receive_json_from(), {'type': 'unread_count', 'count': 0})

        await communicator.send_to(text_data='not json')
        self.assertEqual((await communicator.receive_json_from())['type'], 'error')
        await communicator.disconnect()
