# apps/complaints/tests.py

from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.communication.models import Notification
from apps.core.exceptions import Conflict, Forbidden, InvalidInput, InvalidState
from .models import Complaint, ComplaintUpvote
from .priority import compute_priority, priority_rank
from .services import ComplaintService

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


def file_complaint(reporter, **overrides):
    data = {
        'title': 'Broken ceiling fan',
        'description': 'The ceiling fan in my room stopped working yesterday.',
        'category': Complaint.Category.ELECTRICAL,
    }
    data.update(overrides)
    return ComplaintService.create(reporter, **data)


def age_complaint(complaint, hours):
    Complaint.objects.filter(pk=complaint.pk).update(created_at=timezone.now() - timedelta(hours=hours))
    complaint.refresh_from_db()
    return complaint


class PriorityPolicyTestCase(TestCase):
    """Test cases for derived complaint priority"""

    def setUp(self):
        self.now = timezone.now()

    def test_base_priority_by_category(self):
        """High-severity categories start high, everything else medium"""
        for category in ('electrical', 'plumbing', 'security'):
            self.assertEqual(compute_priority(category, self.now, 'pending', now=self.now), 'high')
        for category in ('furniture', 'cleanliness', 'noise', 'other'):
            self.assertEqual(compute_priority(category, self.now, 'pending', now=self.now), 'medium')

    def test_age_escalation(self):
        """Open complaints escalate to high after 48h and urgent after 72h"""
        created = self.now - timedelta(hours=50)
        self.assertEqual(compute_priority('noise', created, 'pending', now=self.now), 'high')
        created = self.now - timedelta(hours=73)
        self.assertEqual(compute_priority('noise', created, 'in-progress', now=self.now), 'urgent')
        self.assertEqual(compute_priority('plumbing', created, 'pending', now=self.now), 'urgent')

    def test_resolved_complaints_keep_base_priority(self):
        created = self.now - timedelta(days=10)
        self.assertEqual(compute_priority('noise', created, 'resolved', now=self.now), 'medium')
        self.assertEqual(compute_priority('security', created, 'resolved', now=self.now), 'high')

    def test_escalation_is_monotonic(self):
        """Priority never drops as an open complaint ages"""
        created = self.now - timedelta(days=6)
        for category in ('noise', 'electrical'):
            ranks = [
                priority_rank(compute_priority(category, created, 'pending', now=created + timedelta(hours=hours)))
                for hours in range(0, 120, 6)
            ]
            self.assertEqual(ranks, sorted(ranks))

    def test_unknown_category_rejected(self):
        with self.assertRaises(ValueError):
            compute_priority('weather', self.now, 'pending')

    def test_sync_priorities_updates_stale_rows(self):
        reporter = make_user('reporter@example.com')
        complaint = age_complaint(file_complaint(reporter, category=Complaint.Category.NOISE), 80)
        self.assertEqual(complaint.priority, Complaint.Priority.MEDIUM)

        changed = Complaint.objects.all().sync_priorities()

        complaint.refresh_from_db()
        self.assertEqual(changed, 1)
        self.assertEqual(complaint.priority, Complaint.Priority.URGENT)


class ComplaintServiceTestCase(TestCase):
    """Test cases for ComplaintService"""

    def setUp(self):
        self.student = make_user('student@example.com')
        self.other_student = make_user('other@example.com', room='A102')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.other_warden = make_user('warden.b@example.com', role=User.Role.WARDEN, block='B', room='B001')
        self.admin = make_user('admin@example.com', role=User.Role.ADMIN, block='', room='')

    def test_create_defaults_location_and_notifies_staff(self):
        with self.captureOnCommitCallbacks(execute=True):
            complaint = file_complaint(self.student)

        self.assertEqual(complaint.status, Complaint.Status.PENDING)
        self.assertEqual(complaint.priority, Complaint.Priority.HIGH)
        self.assertEqual(complaint.hostel_block, 'A')
        self.assertEqual(complaint.room_number, 'A101')

        recipients = set(Notification.objects.filter(
            related_entity_id=complaint.pk
        ).values_list('recipient__email', flat=True))
        self.assertEqual(recipients, {'warden@example.com', 'warden.b@example.com', 'admin@example.com'})

    def test_create_requires_location(self):
        with self.assertRaises(InvalidInput):
            file_complaint(self.admin)

    def test_duplicate_complaint_guard(self):
        """An identical complaint within the window is rejected, later it is accepted"""
        file_complaint(self.student)
        with self.assertRaises(Conflict) as ctx:
            file_complaint(self.student, title='BROKEN CEILING FAN')
        self.assertEqual(ctx.exception.detail.code, 'duplicate_complaint')

        # Another reporter may file the same text
        file_complaint(self.other_student)

        Complaint.objects.filter(reported_by=self.student).update(
            created_at=timezone.now() - timedelta(hours=13)
        )
        file_complaint(self.student)
        self.assertEqual(Complaint.objects.filter(reported_by=self.student).count(), 2)

    def test_only_reporter_can_edit(self):
        complaint = file_complaint(self.student)
        with self.assertRaises(Forbidden):
            ComplaintService.update(self.other_student, complaint, title='Someone else edits')

    def test_edit_window_closes_after_pending(self):
        complaint = file_complaint(self.student)
        updated = ComplaintService.update(self.student, complaint, category=Complaint.Category.FURNITURE)
        self.assertEqual(updated.priority, Complaint.Priority.MEDIUM)

        ComplaintService.set_status(self.warden, complaint, Complaint.Status.RESOLVED)
        with self.assertRaises(InvalidState):
            ComplaintService.update(self.student, complaint, title='Too late to change')

    def test_set_status_requires_staff_in_block(self):
        complaint = file_complaint(self.student)
        with self.assertRaises(Forbidden):
            ComplaintService.set_status(self.student, complaint, Complaint.Status.IN_PROGRESS)
        with self.assertRaises(Forbidden):
            ComplaintService.set_status(self.other_warden, complaint, Complaint.Status.IN_PROGRESS)

        complaint = ComplaintService.set_status(self.admin, complaint, Complaint.Status.IN_PROGRESS)
        self.assertEqual(complaint.status, Complaint.Status.IN_PROGRESS)

    def test_set_status_rejects_unknown_status(self):
        complaint = file_complaint(self.student)
        with self.assertRaises(InvalidInput):
            ComplaintService.set_status(self.warden, complaint, 'closed')

    def test_terminal_status_cannot_move(self):
        complaint = file_complaint(self.student)
        ComplaintService.set_status(self.warden, complaint, Complaint.Status.REJECTED)
        with self.assertRaises(InvalidState):
            ComplaintService.set_status(self.warden, complaint, Complaint.Status.PENDING)
        with self.assertRaises(InvalidState):
            ComplaintService.set_status(self.warden, complaint, Complaint.Status.REJECTED)

    def test_resolving_stamps_time_and_notifies(self):
        complaint = file_complaint(self.student)
        with self.captureOnCommitCallbacks(execute=True):
            complaint = ComplaintService.set_status(
                self.warden, complaint, Complaint.Status.RESOLVED,
                assigned_to=self.admin, resolution_notes='Fan replaced'
            )

        self.assertIsNotNone(complaint.actual_resolution_time)
        self.assertEqual(complaint.assigned_to, self.admin)
        self.assertTrue(Notification.objects.filter(
            recipient=self.student, title='Complaint Status Updated'
        ).exists())
        self.assertTrue(Notification.objects.filter(
            recipient=self.admin, title='New Complaint Assigned'
        ).exists())

    def test_assignee_must_be_staff(self):
        complaint = file_complaint(self.student)
        with self.assertRaises(InvalidInput):
            ComplaintService.set_status(
                self.warden, complaint, Complaint.Status.IN_PROGRESS, assigned_to=self.other_student
            )

    def test_upvote_is_idempotent(self):
        complaint = file_complaint(self.student)
        self.assertEqual(ComplaintService.upvote(self.other_student, complaint), 1)

        with self.assertRaises(Conflict) as ctx:
            ComplaintService.upvote(self.other_student, complaint)
        self.assertEqual(ctx.exception.detail.code, 'already_upvoted')
        self.assertEqual(ComplaintUpvote.objects.filter(complaint=complaint).count(), 1)

        self.assertEqual(ComplaintService.remove_upvote(self.other_student, complaint), 0)
        with self.assertRaises(Conflict) as ctx:
            ComplaintService.remove_upvote(self.other_student, complaint)
        self.assertEqual(ctx.exception.detail.code, 'not_upvoted')

    def test_reporter_cannot_upvote_own_complaint(self):
        complaint = file_complaint(self.student)
        with self.assertRaises(Forbidden):
            ComplaintService.upvote(self.student, complaint)

    def test_feedback_on_resolved_complaint(self):
        complaint = file_complaint(self.student)
        with self.assertRaises(InvalidState):
            ComplaintService.add_feedback(self.student, complaint, rating=4)

        ComplaintService.set_status(self.warden, complaint, Complaint.Status.RESOLVED)
        with self.assertRaises(Forbidden):
            ComplaintService.add_feedback(self.other_student, complaint, rating=4)
        with self.assertRaises(InvalidInput):
            ComplaintService.add_feedback(self.student, complaint)

        complaint = ComplaintService.add_feedback(self.student, complaint, rating=4, comment='Quick fix')
        self.assertEqual(complaint.feedback_rating, 4)
        self.assertIsNotNone(complaint.feedback_at)
        self.assertTrue(complaint.has_feedback)

        with self.assertRaises(Conflict):
            ComplaintService.add_feedback(self.student, complaint, rating=5)

    def test_confirming_resolution_resolves_complaint(self):
        complaint = file_complaint(self.student)
        ComplaintService.set_status(
            self.warden, complaint, Complaint.Status.AWAITING_APPROVAL, assigned_to=self.warden
        )

        with self.captureOnCommitCallbacks(execute=True):
            complaint = ComplaintService.add_feedback(self.student, complaint, resolved=True)

        self.assertEqual(complaint.status, Complaint.Status.RESOLVED)
        self.assertTrue(complaint.feedback_resolved)
        self.assertIsNotNone(complaint.actual_resolution_time)
        self.assertTrue(Notification.objects.filter(
            recipient=self.warden, title='Resolution Confirmed'
        ).exists())

    def test_denying_resolution_reopens_complaint(self):
        complaint = file_complaint(self.student)
        ComplaintService.set_status(self.warden, complaint, Complaint.Status.AWAITING_APPROVAL)

        with self.captureOnCommitCallbacks(execute=True):
            complaint = ComplaintService.add_feedback(self.student, complaint, resolved=False)

        self.assertEqual(complaint.status, Complaint.Status.IN_PROGRESS)
        self.assertIsNone(complaint.actual_resolution_time)
        # Unassigned, so the block's wardens and the admins hear about it
        disputed = set(Notification.objects.filter(
            title='Resolution Disputed'
        ).values_list('recipient__email', flat=True))
        self.assertEqual(disputed, {'warden@example.com', 'admin@example.com'})

        ComplaintService.set_status(self.warden, complaint, Complaint.Status.AWAITING_APPROVAL)
        with self.assertRaises(Conflict):
            ComplaintService.add_feedback(self.student, complaint, resolved=True)

    def test_confirmation_requires_verdict(self):
        complaint = file_complaint(self.student)
        ComplaintService.set_status(self.warden, complaint, Complaint.Status.AWAITING_APPROVAL)
        with self.assertRaises(InvalidInput):
            ComplaintService.add_feedback(self.student, complaint, rating=3)

    def test_stats_scoped_to_warden_block(self):
        file_complaint(self.student)
        block_b = make_user('b.student@example.com', block='B', room='B101')
        resolved = file_complaint(block_b, category=Complaint.Category.NOISE, title='Loud music nightly')
        ComplaintService.set_status(self.admin, resolved, Complaint.Status.RESOLVED)

        stats = ComplaintService.stats(self.warden, hostel_block='B')
        self.assertEqual(stats['overview']['total'], 1)
        self.assertEqual(stats['overview']['resolved'], 0)

        stats = ComplaintService.stats(self.admin)
        self.assertEqual(stats['overview']['total'], 2)
        self.assertEqual(stats['overview']['resolution_rate'], 50.0)
        self.assertEqual(len(stats['resolution_trend']), 1)
        self.assertEqual(stats['resolution_trend'][0]['count'], 1)

        with self.assertRaises(Forbidden):
            ComplaintService.stats(self.student)


class ComplaintAPITestCase(APITestCase):
    """Test cases for the complaints API"""

    def setUp(self):
        self.student = make_user('student@example.com')
        self.neighbour = make_user('neighbour@example.com', room='A102')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.public = file_complaint(self.student)
        self.anonymous = file_complaint(
            self.student, title='Noise after midnight', category=Complaint.Category.NOISE, is_anonymous=True
        )

    def test_list_requires_authentication(self):
        response = self.client.get('/api/complaints/')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['kind'], 'not_authenticated')

    def test_student_visibility(self):
        """Students see their own complaints plus everyone's non-anonymous ones"""
        self.client.force_authenticate(user=self.neighbour)
        response = self.client.get('/api/complaints/')
        self.assertEqual(response.status_code, 200)
        ids = {item['id'] for item in response.data['results']}
        self.assertEqual(ids, {str(self.public.pk)})

        response = self.client.get(f'/api/complaints/{self.anonymous.pk}/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_anonymous_reporter_masked_for_staff(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.get(f'/api/complaints/{self.anonymous.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['reported_by']['name'], 'Anonymous')

        self.client.force_authenticate(user=self.student)
        response = self.client.get(f'/api/complaints/{self.anonymous.pk}/')
        self.assertEqual(response.data['reported_by']['email'], 'student@example.com')

    def test_malformed_id_is_not_found(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/complaints/not-a-uuid/')
        self.assertEqual(response.status_code, 404)

    def test_create_validation_errors(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.post('/api/complaints/', {
            'title': 'Bad', 'description': 'short', 'category': 'weather'
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['kind'], 'validation_error')
        fields = {error['field'] for error in response.data['errors']}
        self.assertEqual(fields, {'title', 'description', 'category'})

    def test_create_and_duplicate(self):
        self.client.force_authenticate(user=self.neighbour)
        payload = {
            'title': 'Leaking tap in washroom',
            'description': 'The washroom tap has been leaking since morning.',
            'category': 'plumbing',
        }
        response = self.client.post('/api/complaints/', payload, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['priority'], 'high')
        self.assertEqual(response.data['room_number'], 'A102')

        response = self.client.post('/api/complaints/', payload, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['kind'], 'duplicate_complaint')

    def test_upvote_endpoint(self):
        self.client.force_authenticate(user=self.neighbour)
        url = f'/api/complaints/{self.public.pk}/upvote/'

        response = self.client.post(url)
        self.assertEqual(response.data['upvote_count'], 1)
        response = self.client.post(url)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['kind'], 'already_upvoted')
        response = self.client.delete(url)
        self.assertEqual(response.data['upvote_count'], 0)

    def test_order_by_upvotes(self):
        ComplaintService.upvote(self.neighbour, self.anonymous)
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/complaints/', {'ordering': '-upvote_count'})
        self.assertEqual(response.data['results'][0]['id'], str(self.anonymous.pk))
        self.assertEqual(response.data['results'][0]['upvote_count'], 1)

    def test_status_endpoint(self):
        url = f'/api/complaints/{self.public.pk}/status/'
        self.client.force_authenticate(user=self.student)
        response = self.client.put(url, {'status': 'in-progress'}, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['kind'], 'forbidden')

        self.client.force_authenticate(user=self.warden)
        response = self.client.put(url, {'status': 'resolved'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'resolved')

        response = self.client.put(url, {'status': 'pending'}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['kind'], 'invalid_state')

    def test_edit_after_pending_is_invalid_state(self):
        ComplaintService.set_status(self.warden, self.public, Complaint.Status.IN_PROGRESS)
        self.client.force_authenticate(user=self.student)
        response = self.client.patch(
            f'/api/complaints/{self.public.pk}/', {'title': 'Updated fan complaint'}, format='json'
        )
        self.assertEqual(response.status_code, 409)

    def test_stats_endpoint(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.get('/api/complaints/stats/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['overview']['total'], 2)
        self.assertEqual(response.data['overview']['pending'], 2)
