# apps/resources/tests.py

from unittest import mock

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.communication.models import Notification
from apps.core.exceptions import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from .models import BorrowRecord, BorrowRequest, Resource, ResourceRequest
from .services import ResourceRequestService, ResourceService

User = get_user_model()


def make_user(email, role=User.Role.STUDENT, block='A', room='A101', **extra):
    return User.objects.create_user(
        email=email,
        password='Passw0rd',
        first_name=email.split('@')[0].title(),
        role=role,
        hostel_block=block,
        room_number=room,
        **extra
    )


def list_resource(owner, **overrides):
    data = {
        'name': 'Scientific calculator',
        'description': 'Casio fx-991ES, works well, spare battery included.',
        'category': Resource.Category.ELECTRONICS,
        'condition': Resource.Condition.GOOD,
    }
    data.update(overrides)
    return ResourceService.create(owner, **data)


def lend(owner, resource, borrower, **kwargs):
    borrow_request = ResourceService.request_borrow(borrower, resource)
    return ResourceService.approve_request(owner, resource, borrow_request.pk, **kwargs)


class ResourceListingTestCase(TestCase):
    """Test cases for creating, editing and removing listings"""

    def setUp(self):
        self.owner = make_user('owner@example.com')
        self.other = make_user('other@example.com', room='A102')
        self.admin = make_user('admin@example.com', role=User.Role.ADMIN, block='', room='')

    def test_create_defaults_location_and_counts_lending(self):
        resource = list_resource(self.owner)
        self.owner.refresh_from_db()

        self.assertEqual(resource.availability, Resource.Availability.AVAILABLE)
        self.assertEqual(resource.hostel_block, 'A')
        self.assertEqual(resource.room_number, 'A101')
        self.assertEqual(resource.max_borrow_duration, 7)
        self.assertEqual(self.owner.total_lent, 1)

    def test_create_requires_location(self):
        with self.assertRaises(InvalidInput):
            list_resource(self.admin)

    def test_duplicate_name_per_owner(self):
        list_resource(self.owner)
        with self.assertRaises(Conflict) as ctx:
            list_resource(self.owner, name='SCIENTIFIC Calculator')
        self.assertEqual(ctx.exception.detail.code, 'duplicate_resource')

        # Another owner may use the same name
        list_resource(self.other)

    def test_owner_availability_updates(self):
        resource = list_resource(self.owner)
        resource = ResourceService.update(self.owner, resource, availability=Resource.Availability.MAINTENANCE)
        self.assertEqual(resource.availability, Resource.Availability.MAINTENANCE)

        with self.assertRaises(InvalidInput):
            ResourceService.update(self.owner, resource, availability=Resource.Availability.BORROWED)

        resource = ResourceService.update(self.owner, resource, availability=Resource.Availability.AVAILABLE)
        ResourceService.request_borrow(self.other, resource)
        with self.assertRaises(InvalidState):
            ResourceService.update(self.owner, resource, availability=Resource.Availability.MAINTENANCE)

    def test_only_owner_can_update(self):
        resource = list_resource(self.owner)
        with self.assertRaises(Forbidden):
            ResourceService.update(self.other, resource, name='Borrowed calculator')

    def test_rename_checks_uniqueness(self):
        list_resource(self.owner, name='Cricket bat', category=Resource.Category.SPORTS)
        resource = list_resource(self.owner)
        with self.assertRaises(Conflict):
            ResourceService.update(self.owner, resource, name='cricket BAT')

        resource = ResourceService.update(self.owner, resource, name='Scientific Calculator')
        self.assertEqual(resource.name, 'Scientific Calculator')

    def test_delete_decrements_lending_count(self):
        resource = list_resource(self.owner)
        with self.assertRaises(Forbidden):
            ResourceService.delete(self.other, resource)

        ResourceService.delete(self.admin, resource)
        self.owner.refresh_from_db()
        self.assertFalse(Resource.objects.filter(pk=resource.pk).exists())
        self.assertEqual(self.owner.total_lent, 0)

    def test_cannot_delete_borrowed_resource(self):
        resource = list_resource(self.owner)
        lend(self.owner, resource, self.other)
        with self.assertRaises(InvalidState):
            ResourceService.delete(self.owner, resource)

    def test_views_counted_for_non_owners(self):
        resource = list_resource(self.owner)
        ResourceService.view(self.owner, resource)
        ResourceService.view(self.other, resource)
        resource = ResourceService.view(self.other, resource)
        self.assertEqual(resource.view_count, 2)

    def test_wishlist_is_idempotent(self):
        resource = list_resource(self.owner)
        self.assertTrue(ResourceService.add_to_wishlist(self.other, resource))
        self.assertFalse(ResourceService.add_to_wishlist(self.other, resource))
        self.assertTrue(resource.is_in_wishlist(self.other))
        self.assertEqual(list(ResourceService.mine(self.other, 'wishlist')), [resource])

        self.assertTrue(ResourceService.remove_from_wishlist(self.other, resource))
        self.assertFalse(ResourceService.remove_from_wishlist(self.other, resource))

    def test_mine_rejects_unknown_type(self):
        with self.assertRaises(InvalidInput):
            ResourceService.mine(self.owner, 'stolen')


class BorrowLifecycleTestCase(TestCase):
    """Test cases for the borrow request, approval and return flow"""

    def setUp(self):
        self.owner = make_user('owner@example.com')
        self.alice = make_user('alice@example.com', room='A102')
        self.bob = make_user('bob@example.com', room='A103')
        self.resource = list_resource(self.owner)

    def test_request_marks_resource_requested_and_notifies_owner(self):
        with self.captureOnCommitCallbacks(execute=True):
            borrow_request = ResourceService.request_borrow(self.alice, self.resource, message='Need it for exams')

        self.resource.refresh_from_db()
        self.assertEqual(borrow_request.status, BorrowRequest.Status.PENDING)
        self.assertEqual(self.resource.availability, Resource.Availability.REQUESTED)
        notification = Notification.objects.get(recipient=self.owner)
        self.assertEqual(notification.category, Notification.Category.BORROW_REQUEST)
        self.assertIn('Need it for exams', notification.message)

    def test_owner_cannot_request_own_resource(self):
        with self.assertRaises(Forbidden):
            ResourceService.request_borrow(self.owner, self.resource)

    def test_duplicate_pending_request(self):
        ResourceService.request_borrow(self.alice, self.resource)
        with self.assertRaises(Conflict) as ctx:
            ResourceService.request_borrow(self.alice, self.resource)
        self.assertEqual(ctx.exception.detail.code, 'duplicate_request')

    def test_request_requires_lendable_state(self):
        ResourceService.update(self.owner, self.resource, availability=Resource.Availability.MAINTENANCE)
        with self.assertRaises(InvalidState):
            ResourceService.request_borrow(self.alice, self.resource)

    def test_approve_lends_to_one_and_rejects_the_rest(self):
        first = ResourceService.request_borrow(self.alice, self.resource)
        second = ResourceService.request_borrow(self.bob, self.resource)

        with self.captureOnCommitCallbacks(execute=True):
            resource = ResourceService.approve_request(self.owner, self.resource, first.pk, duration=3)

        self.assertEqual(resource.availability, Resource.Availability.BORROWED)
        self.assertEqual(resource.current_borrower, self.alice)
        self.assertEqual(resource.total_borrows, 1)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.status, BorrowRequest.Status.APPROVED)
        self.assertEqual(second.status, BorrowRequest.Status.REJECTED)
        self.assertIsNotNone(second.decision_at)

        record = BorrowRecord.objects.get(resource=resource, status=BorrowRecord.Status.ACTIVE)
        self.assertEqual(record.borrower, self.alice)
        self.assertEqual((record.due_date - record.borrowed_at).days, 3)
        self.assertEqual(resource.current_due_date, record.due_date)

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.total_borrowed, 1)

        self.assertTrue(Notification.objects.filter(
            recipient=self.alice, category=Notification.Category.BORROW_APPROVAL
        ).exists())
        self.assertTrue(Notification.objects.filter(
            recipient=self.bob, category=Notification.Category.BORROW_REJECTION
        ).exists())

    def test_approval_is_exclusive(self):
        first = ResourceService.request_borrow(self.alice, self.resource)
        second = ResourceService.request_borrow(self.bob, self.resource)
        ResourceService.approve_request(self.owner, self.resource, first.pk)

        with self.assertRaises(InvalidState):
            ResourceService.approve_request(self.owner, self.resource, second.pk)
        self.assertEqual(BorrowRecord.objects.filter(resource=self.resource).count(), 1)

    def test_single_active_borrow_enforced_by_database(self):
        lend(self.owner, self.resource, self.alice)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                BorrowRecord.objects.create(
                    resource=self.resource, borrower=self.bob, due_date=timezone.now()
                )

    def test_approve_validation(self):
        borrow_request = ResourceService.request_borrow(self.alice, self.resource)
        with self.assertRaises(Forbidden):
            ResourceService.approve_request(self.alice, self.resource, borrow_request.pk)
        with self.assertRaises(InvalidInput):
            ResourceService.approve_request(self.owner, self.resource, borrow_request.pk, duration=31)
        with self.assertRaises(NotFound):
            ResourceService.approve_request(self.owner, self.resource, self.resource.pk)

    def test_reject_last_request_frees_resource(self):
        first = ResourceService.request_borrow(self.alice, self.resource)
        second = ResourceService.request_borrow(self.bob, self.resource)

        resource = ResourceService.reject_request(self.owner, self.resource, first.pk)
        self.assertEqual(resource.availability, Resource.Availability.REQUESTED)

        with self.captureOnCommitCallbacks(execute=True):
            resource = ResourceService.reject_request(self.owner, self.resource, second.pk)
        self.assertEqual(resource.availability, Resource.Availability.AVAILABLE)
        self.assertTrue(Notification.objects.filter(recipient=self.bob, title='Borrow Request Rejected').exists())

        with self.assertRaises(InvalidState):
            ResourceService.reject_request(self.owner, self.resource, second.pk)

    def test_mark_available_closes_borrow_and_notifies(self):
        lend(self.owner, self.resource, self.alice)
        with self.captureOnCommitCallbacks(execute=True):
            resource = ResourceService.mark_available(self.owner, self.resource, rating=4, feedback='Careful user')

        self.assertEqual(resource.availability, Resource.Availability.AVAILABLE)
        self.assertIsNone(resource.current_borrower)
        record = BorrowRecord.objects.get(resource=resource)
        self.assertEqual(record.status, BorrowRecord.Status.RETURNED)
        self.assertIsNotNone(record.returned_at)
        self.assertEqual(record.rating, 4)
        self.assertTrue(Notification.objects.filter(
            recipient=self.alice, category=Notification.Category.RETURNED
        ).exists())

    def test_average_rating_is_mean_of_returns(self):
        for rating in (4, 5, 3):
            lend(self.owner, self.resource, self.alice)
            resource = ResourceService.mark_available(self.owner, self.resource, rating=rating)
        self.assertEqual(resource.average_rating, 4.0)
        self.assertEqual(resource.total_borrows, 3)

    def test_average_rating_keeps_full_precision(self):
        for rating in (4, 5, 5):
            lend(self.owner, self.resource, self.alice)
            resource = ResourceService.mark_available(self.owner, self.resource, rating=rating)
        self.assertAlmostEqual(resource.average_rating, 14 / 3)
        resource.refresh_from_db()
        self.assertAlmostEqual(resource.average_rating, 14 / 3)

    def test_rating_needs_an_active_borrow(self):
        with self.assertRaises(InvalidInput):
            ResourceService.mark_available(self.owner, self.resource, rating=4, feedback='Great')
        self.assertFalse(BorrowRecord.objects.filter(resource=self.resource).exists())

        resource = ResourceService.mark_available(self.owner, self.resource)
        self.assertEqual(resource.availability, Resource.Availability.AVAILABLE)
        self.assertEqual(resource.average_rating, 0)

    def test_deleting_requested_resource_notifies_requesters(self):
        ResourceService.request_borrow(self.alice, self.resource)
        ResourceService.request_borrow(self.bob, self.resource)

        with self.captureOnCommitCallbacks(execute=True):
            ResourceService.delete(self.owner, self.resource)

        self.assertFalse(Resource.objects.filter(name='Scientific calculator').exists())
        for requester in (self.alice, self.bob):
            notification = Notification.objects.get(recipient=requester, title='Borrow Request Withdrawn')
            self.assertEqual(notification.category, Notification.Category.BORROW_REJECTION)

    def test_mark_available_rejected_while_requested(self):
        ResourceService.request_borrow(self.alice, self.resource)
        with self.assertRaises(InvalidState):
            ResourceService.mark_available(self.owner, self.resource)
        with self.assertRaises(Forbidden):
            ResourceService.mark_available(self.bob, self.resource)

    def test_request_return_only_by_borrower(self):
        lend(self.owner, self.resource, self.alice)
        self.resource.refresh_from_db()
        with self.assertRaises(Forbidden):
            ResourceService.request_return(self.bob, self.resource)

        with self.captureOnCommitCallbacks(execute=True):
            ResourceService.request_return(self.alice, self.resource)
        self.assertTrue(Notification.objects.filter(recipient=self.owner, title='Return Requested').exists())


class BlockResourceTestCase(TestCase):
    """Test cases for warden and admin blocking"""

    def setUp(self):
        self.owner = make_user('owner@example.com')
        self.borrower = make_user('borrower@example.com', room='A102')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.other_warden = make_user('warden.c@example.com', role=User.Role.WARDEN, block='C', room='C001')
        self.resource = list_resource(self.owner)

    def test_block_and_unblock(self):
        with self.captureOnCommitCallbacks(execute=True):
            resource = ResourceService.set_blocked(self.warden, self.resource, 'block')
        self.assertEqual(resource.availability, Resource.Availability.UNAVAILABLE)
        self.assertTrue(Notification.objects.filter(recipient=self.owner, title='Resource Blocked').exists())

        with self.assertRaises(InvalidState):
            ResourceService.set_blocked(self.warden, self.resource, 'block')

        resource = ResourceService.set_blocked(self.warden, self.resource, 'unblock')
        self.assertEqual(resource.availability, Resource.Availability.AVAILABLE)

    def test_unblock_only_from_unavailable(self):
        with self.assertRaises(InvalidState):
            ResourceService.set_blocked(self.warden, self.resource, 'unblock')

    def test_cannot_block_borrowed_resource(self):
        lend(self.owner, self.resource, self.borrower)
        with self.assertRaises(InvalidState):
            ResourceService.set_blocked(self.warden, self.resource, 'block')

    def test_blocking_requested_resource_rejects_requests(self):
        borrow_request = ResourceService.request_borrow(self.borrower, self.resource)
        ResourceService.set_blocked(self.warden, self.resource, 'block')
        borrow_request.refresh_from_db()
        self.assertEqual(borrow_request.status, BorrowRequest.Status.REJECTED)

    def test_block_permissions(self):
        with self.assertRaises(Forbidden):
            ResourceService.set_blocked(self.owner, self.resource, 'block')
        with self.assertRaises(Forbidden):
            ResourceService.set_blocked(self.other_warden, self.resource, 'block')
        with self.assertRaises(InvalidInput):
            ResourceService.set_blocked(self.warden, self.resource, 'hide')

    def test_stats_for_staff(self):
        lend(self.owner, self.resource, self.borrower)
        list_resource(self.owner, name='Badminton racket', category=Resource.Category.SPORTS)

        stats = ResourceService.stats(self.warden)
        self.assertEqual(stats['overview']['total'], 2)
        self.assertEqual(stats['overview']['borrowed'], 1)
        self.assertEqual(stats['overview']['availability_rate'], 50.0)
        self.assertEqual(stats['most_borrowed'][0]['name'], 'Scientific calculator')

        with self.assertRaises(Forbidden):
            ResourceService.stats(self.owner)


class ResourceRequestServiceTestCase(TestCase):
    """Test cases for resource requests and fulfillment"""

    def setUp(self):
        self.requester = make_user('requester@example.com')
        self.helper = make_user('helper@example.com', block='B', room='B204')
        self.resource_request = ResourceRequestService.create(
            self.requester,
            'Need a study lamp',
            'Looking for a desk lamp for late night studying.',
            Resource.Category.ELECTRONICS,
        )

    def test_create_opens_request(self):
        self.assertEqual(self.resource_request.status, ResourceRequest.Status.OPEN)

    def test_cancel(self):
        with self.assertRaises(Forbidden):
            ResourceRequestService.cancel(self.helper, self.resource_request)

        cancelled = ResourceRequestService.cancel(self.requester, self.resource_request)
        self.assertEqual(cancelled.status, ResourceRequest.Status.CANCELLED)
        with self.assertRaises(InvalidState):
            ResourceRequestService.cancel(self.requester, cancelled)

    def test_fulfill_creates_resource_and_notifies(self):
        with self.captureOnCommitCallbacks(execute=True):
            fulfilled = ResourceRequestService.fulfill(
                self.helper, self.resource_request, Resource.Condition.GOOD,
                image_url='https://example.com/lamp.jpg'
            )

        self.assertEqual(fulfilled.status, ResourceRequest.Status.FULFILLED)
        self.assertEqual(fulfilled.fulfilled_by, self.helper)
        self.assertIsNotNone(fulfilled.fulfilled_at)

        resource = fulfilled.fulfilled_resource
        self.assertEqual(resource.name, 'Need a study lamp')
        self.assertEqual(resource.owner, self.helper)
        self.assertEqual(resource.hostel_block, 'B')
        self.assertEqual(resource.room_number, 'B204')
        self.assertEqual(resource.images, ['https://example.com/lamp.jpg'])

        self.helper.refresh_from_db()
        self.assertEqual(self.helper.total_lent, 1)

        notification = Notification.objects.get(recipient=self.requester)
        self.assertEqual(notification.metadata['room_number'], 'B204')
        self.assertIn('B Block, Room B204', notification.message)

        with self.assertRaises(InvalidState):
            ResourceRequestService.fulfill(self.helper, fulfilled, Resource.Condition.GOOD)

    def test_fulfill_rules(self):
        with self.assertRaises(Forbidden):
            ResourceRequestService.fulfill(self.requester, self.resource_request, Resource.Condition.GOOD)

        homeless = make_user('new@example.com', block='', room='')
        with self.assertRaises(InvalidInput):
            ResourceRequestService.fulfill(homeless, self.resource_request, Resource.Condition.GOOD)

    def test_fulfill_is_all_or_nothing(self):
        with mock.patch.object(User, 'adjust_counter', side_effect=DatabaseError('counter write failed')):
            with self.assertRaises(DatabaseError):
                ResourceRequestService.fulfill(self.helper, self.resource_request, Resource.Condition.FAIR)

        self.resource_request.refresh_from_db()
        self.assertEqual(self.resource_request.status, ResourceRequest.Status.OPEN)
        self.assertFalse(Resource.objects.filter(owner=self.helper).exists())

    def test_fulfill_duplicate_name_leaves_request_open(self):
        list_resource(self.helper, name='Need a study lamp')
        with self.assertRaises(Conflict):
            ResourceRequestService.fulfill(self.helper, self.resource_request, Resource.Condition.GOOD)
        self.resource_request.refresh_from_db()
        self.assertEqual(self.resource_request.status, ResourceRequest.Status.OPEN)


class ResourceAPITestCase(APITestCase):
    """Test cases for the resources API"""

    def setUp(self):
        self.owner = make_user('owner@example.com')
        self.borrower = make_user('borrower@example.com', room='A102')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.resource = list_resource(self.owner, tags=['casio', 'maths'])
        self.hidden = list_resource(
            self.owner, name='Private kettle', category=Resource.Category.KITCHEN, is_public=False
        )

    def test_list_shows_public_resources(self):
        self.client.force_authenticate(user=self.borrower)
        response = self.client.get('/api/resources/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], str(self.resource.pk))

    def test_search_matches_tags(self):
        self.client.force_authenticate(user=self.borrower)
        response = self.client.get('/api/resources/', {'search': 'maths'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/resources/', {'search': 'guitar'})
        self.assertEqual(response.data['count'], 0)

    def test_private_resource_hidden_from_others(self):
        self.client.force_authenticate(user=self.borrower)
        response = self.client.get(f'/api/resources/{self.hidden.pk}/')
        self.assertEqual(response.status_code, 404)

        self.client.force_authenticate(user=self.owner)
        response = self.client.get(f'/api/resources/{self.hidden.pk}/')
        self.assertEqual(response.status_code, 200)

    def test_create_resource(self):
        self.client.force_authenticate(user=self.borrower)
        response = self.client.post('/api/resources/', {
            'name': 'Tennis racket',
            'description': 'Wilson racket with a new grip.',
            'category': 'sports',
            'condition': 'excellent',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['room_number'], 'A102')
        self.assertEqual(response.data['owner']['email'], 'borrower@example.com')

    def test_borrow_flow(self):
        self.client.force_authenticate(user=self.borrower)
        response = self.client.post(f'/api/resources/{self.resource.pk}/request/', {'message': 'Please'}, format='json')
        self.assertEqual(response.status_code, 201)
        request_id = response.data['request']['id']

        response = self.client.post(f'/api/resources/{self.resource.pk}/approve/', {'request_id': request_id}, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['kind'], 'forbidden')

        self.client.force_authenticate(user=self.owner)
        response = self.client.post(
            f'/api/resources/{self.resource.pk}/approve/', {'request_id': request_id, 'duration': 5}, format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['availability'], 'borrowed')
        self.assertEqual(len(response.data['borrow_history']), 1)

        self.client.force_authenticate(user=self.borrower)
        response = self.client.get('/api/resources/my/', {'type': 'borrowed'})
        self.assertEqual(response.data['count'], 1)

        self.client.force_authenticate(user=self.owner)
        response = self.client.post(f'/api/resources/{self.resource.pk}/mark-available/', {'rating': 5}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['average_rating'], 5.0)

    def test_duplicate_request_conflict(self):
        self.client.force_authenticate(user=self.borrower)
        url = f'/api/resources/{self.resource.pk}/request/'
        self.client.post(url, {}, format='json')
        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['kind'], 'duplicate_request')

    def test_block_endpoint_requires_staff(self):
        url = f'/api/resources/{self.resource.pk}/block/'
        self.client.force_authenticate(user=self.owner)
        response = self.client.put(url, {'action': 'block'}, format='json')
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(user=self.warden)
        response = self.client.put(url, {'action': 'block'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['resource']['availability'], 'unavailable')

    def test_resource_request_endpoints(self):
        self.client.force_authenticate(user=self.borrower)
        response = self.client.post('/api/resource-requests/', {
            'title': 'Need a cricket bat',
            'description': 'Looking for a bat for the weekend match.',
            'category': 'sports',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        request_id = response.data['id']

        response = self.client.get('/api/resource-requests/')
        self.assertEqual(response.data['count'], 1)

        self.client.force_authenticate(user=self.owner)
        response = self.client.post(
            f'/api/resource-requests/{request_id}/fulfill/', {'condition': 'good'}, format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['request']['status'], 'fulfilled')
        self.assertEqual(response.data['request']['fulfilled_resource']['name'], 'Need a cricket bat')

        response = self.client.get('/api/resource-requests/')
        self.assertEqual(response.data['count'], 0)
