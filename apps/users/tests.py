# apps/users/tests.py

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from apps.communication.models import Notification
from apps.complaints.models import Complaint
from apps.complaints.services import ComplaintService
from apps.resources.services import ResourceService

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


class UserModelTestCase(TestCase):
    """Test cases for the User model"""

    def test_email_is_normalised(self):
        user = User.objects.create_user(email='Mixed.Case@Example.COM', password='Passw0rd', first_name='Mixed')
        self.assertEqual(user.email, 'mixed.case@example.com')
        self.assertEqual(user.role, User.Role.STUDENT)

    def test_superuser_is_admin(self):
        user = User.objects.create_superuser(email='root@example.com', password='Passw0rd', first_name='Root')
        self.assertTrue(user.is_admin)
        self.assertTrue(user.is_staff_member)
        self.assertTrue(user.can_manage_block('C'))

    def test_display_properties(self):
        user = make_user('asha@example.com', last_name='Rao', room='A204')
        self.assertEqual(user.full_name, 'Asha Rao')
        self.assertEqual(user.full_address, 'A Block, Room A204')

    def test_warden_scope(self):
        warden = make_user('warden@example.com', role=User.Role.WARDEN, block='B', room='B001')
        self.assertTrue(warden.can_manage_block('B'))
        self.assertFalse(warden.can_manage_block('A'))

    def test_counter_never_negative(self):
        user = make_user('counter@example.com')
        user.adjust_counter('total_lent', 2)
        user.adjust_counter('total_lent', -3)
        user.refresh_from_db()
        self.assertEqual(user.total_lent, 2)

        user.adjust_counter('total_lent', -2)
        user.refresh_from_db()
        self.assertEqual(user.total_lent, 0)

        with self.assertRaises(ValueError):
            user.adjust_counter('reputation', 1)

    def test_wardens_for_block(self):
        warden_a = make_user('wa@example.com', role=User.Role.WARDEN, room='A001')
        make_user('wb@example.com', role=User.Role.WARDEN, block='B', room='B001')
        admin = make_user('admin@example.com', role=User.Role.ADMIN, block='', room='')
        make_user('inactive@example.com', role=User.Role.ADMIN, block='', room='', is_active=False)

        self.assertEqual(set(User.objects.wardens_for_block('A')), {warden_a, admin})


class AuthAPITestCase(APITestCase):
    """Test cases for registration, login and profile endpoints"""

    def setUp(self):
        self.user = make_user('existing@example.com')

    def test_register_creates_student_with_token(self):
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post('/api/auth/register/', {
                'email': 'New.Student@Example.com',
                'password': 'Hostel2024xY',
                'first_name': 'New',
                'hostel_block': 'C',
                'room_number': 'C110',
                'role': 'admin',
            }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['user']['email'], 'new.student@example.com')
        self.assertEqual(response.data['user']['role'], 'student')
        user = User.objects.get(email='new.student@example.com')
        self.assertEqual(Token.objects.get(user=user).key, response.data['token'])
        self.assertTrue(Notification.objects.filter(recipient=user, title='Welcome to Smart Hostel!').exists())

    def test_register_validation(self):
        response = self.client.post('/api/auth/register/', {
            'email': 'existing@example.com',
            'password': 'weakpass',
            'first_name': 'Dup',
            'hostel_block': 'A',
            'room_number': '101',
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['kind'], 'validation_error')
        fields = {error['field'] for error in response.data['errors']}
        self.assertTrue({'email', 'password', 'room_number'} <= fields)

    def test_login_and_logout(self):
        response = self.client.post('/api/auth/login/', {
            'email': 'EXISTING@example.com', 'password': 'Passw0rd'
        }, format='json')
        self.assertEqual(response.status_code, 200)
        token = response.data['token']

        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token}')
        response = self.client.get('/api/auth/profile/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['email'], 'existing@example.com')

        self.client.post('/api/auth/logout/')
        self.assertFalse(Token.objects.filter(key=token).exists())
        response = self.client.get('/api/auth/profile/')
        self.assertEqual(response.status_code, 401)

    def test_login_with_wrong_password(self):
        response = self.client.post('/api/auth/login/', {
            'email': 'existing@example.com', 'password': 'nope'
        }, format='json')
        self.assertEqual(response.status_code, 400)

    def test_profile_update_cannot_change_role(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.patch('/api/auth/profile/', {
            'room_number': 'A305', 'role': 'admin'
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['room_number'], 'A305')
        self.assertEqual(response.data['role'], 'student')

    def test_change_password_rotates_token(self):
        old_token = Token.objects.create(user=self.user)
        self.client.force_authenticate(user=self.user)
        response = self.client.put('/api/auth/change-password/', {
            'current_password': 'Passw0rd', 'new_password': 'Fresh4Start9'
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertNotEqual(response.data['token'], old_token.key)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('Fresh4Start9'))


class UserDirectoryAPITestCase(APITestCase):
    """Test cases for the staff user directory and dashboard"""

    def setUp(self):
        self.student = make_user('student@example.com')
        self.block_b = make_user('bee@example.com', block='B', room='B101')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.admin = make_user('admin@example.com', role=User.Role.ADMIN, block='', room='')

    def test_students_cannot_list_users(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/users/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['kind'], 'forbidden')

    def test_warden_sees_own_block(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.get('/api/users/')
        emails = {user['email'] for user in response.data['results']}
        self.assertEqual(emails, {'student@example.com', 'warden@example.com'})

    def test_admin_filters(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/users/', {'role': 'student', 'search': 'bee'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['email'], 'bee@example.com')

    def test_admin_promotes_to_warden(self):
        self.client.force_authenticate(user=self.admin)
        url = f'/api/users/{self.block_b.pk}/'
        response = self.client.patch(url, {'role': 'warden'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['role'], 'warden')

        response = self.client.patch(f'/api/users/{self.admin.pk}/', {'role': 'warden'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_warden_cannot_update_users(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.patch(f'/api/users/{self.student.pk}/', {'role': 'admin'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_deactivate_user(self):
        Token.objects.create(user=self.student)
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/users/{self.student.pk}/')
        self.assertEqual(response.status_code, 204)
        self.student.refresh_from_db()
        self.assertFalse(self.student.is_active)
        self.assertFalse(Token.objects.filter(user=self.student).exists())

    def test_cannot_deactivate_user_with_active_borrow(self):
        resource = ResourceService.create(
            self.block_b, name='Desk lamp', description='LED desk lamp with USB port.', category='electronics'
        )
        borrow_request = ResourceService.request_borrow(self.student, resource)
        ResourceService.approve_request(self.block_b, resource, borrow_request.pk)

        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/users/{self.student.pk}/')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['kind'], 'invalid_state')

        response = self.client.delete(f'/api/users/{self.admin.pk}/')
        self.assertEqual(response.status_code, 403)

    def test_user_stats(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/users/stats/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['overview']['total'], 4)
        self.assertEqual(response.data['overview']['students'], 2)

    def test_dashboard(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/users/dashboard/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['stats']['complaints']['total'], 0)
        self.assertEqual(response.data['stats']['resources']['owned'], 0)
        self.assertEqual(response.data['recent']['notifications'], [])


class AdminDashboardAPITestCase(APITestCase):
    """Test cases for the staff dashboard"""

    def setUp(self):
        self.student = make_user('student@example.com')
        self.block_b = make_user('bee@example.com', block='B', room='B101')
        self.warden = make_user('warden@example.com', role=User.Role.WARDEN, room='A001')
        self.admin = make_user('admin@example.com', role=User.Role.ADMIN, block='', room='')

        ComplaintService.create(
            self.student, title='Leaking tap', description='The bathroom tap keeps dripping all night.',
            category=Complaint.Category.PLUMBING,
        )
        ComplaintService.create(
            self.block_b, title='Broken window', description='The window latch in my room is broken.',
            category=Complaint.Category.FURNITURE,
        )
        ResourceService.create(
            self.student, name='Desk lamp', description='LED desk lamp with USB port.', category='electronics'
        )
        ResourceService.create(
            self.block_b, name='Kettle', description='1.5 litre electric kettle, descaled.', category='kitchen'
        )

    def test_students_are_refused(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/users/admin-dashboard/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['kind'], 'forbidden')

    def test_admin_sees_every_block(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/users/admin-dashboard/')
        self.assertEqual(response.status_code, 200)
        overview = response.data['overview']
        self.assertEqual(overview['users'], 4)
        self.assertEqual(overview['complaints']['total'], 2)
        self.assertEqual(overview['complaints']['pending'], 2)
        self.assertEqual(overview['resources'], {'total': 2, 'available': 2, 'borrowed': 0})
        self.assertEqual(len(response.data['recent']['complaints']), 2)
        self.assertEqual(len(response.data['recent']['resources']), 2)

    def test_warden_is_scoped_to_block(self):
        self.client.force_authenticate(user=self.warden)
        response = self.client.get('/api/users/admin-dashboard/')
        self.assertEqual(response.status_code, 200)
        overview = response.data['overview']
        self.assertEqual(overview['users'], 2)
        self.assertEqual(overview['complaints']['total'], 1)
        self.assertEqual(overview['complaints']['in_progress'], 0)
        self.assertEqual(overview['resources']['total'], 1)
        self.assertEqual([c['title'] for c in response.data['recent']['complaints']], ['Leaking tap'])
        self.assertEqual([r['name'] for r in response.data['recent']['resources']], ['Desk lamp'])
