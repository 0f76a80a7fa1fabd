from django.test import TestCase
from rest_framework.test import APIClient

from .models import User


class AuthApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()

	def register(self, **overrides):
		payload = {
			'username': 'jane',
			'email': 'jane@example.com',
			'password': 'password123',
			'role': 'traveler',
		}
		payload.update(overrides)
		return self.client.post('/api/auth/register/', payload, format='json')

	def test_register_returns_tokens(self):
		response = self.register()

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['user']['role'], 'traveler')
		self.assertIn('access', response.data['tokens'])
		self.assertTrue(User.objects.get(username='jane').can_travel)
		self.assertFalse(User.objects.get(username='jane').can_send)

	def test_duplicate_email_rejected(self):
		self.register()
		response = self.register(username='janet', email='JANE@example.com')
		self.assertEqual(response.status_code, 400)

	def test_login_and_me(self):
		self.register()

		login = self.client.post('/api/auth/login/', {'username': 'jane', 'password': 'password123'}, format='json')
		self.assertEqual(login.status_code, 200)

		self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['tokens']['access']}")
		me = self.client.get('/api/auth/me/')
		self.assertEqual(me.status_code, 200)
		self.assertEqual(me.data['username'], 'jane')

	def test_bad_password(self):
		self.register()
		response = self.client.post('/api/auth/login/', {'username': 'jane', 'password': 'wrong'}, format='json')
		self.assertEqual(response.status_code, 400)

	def test_refresh(self):
		tokens = self.register().data['tokens']

		response = self.client.post('/api/auth/refresh/', {'refresh': tokens['refresh']}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertIn('access', response.data)

		bad = self.client.post('/api/auth/refresh/', {'refresh': 'garbage'}, format='json')
		self.assertEqual(bad.status_code, 401)

	def test_api_requires_authentication(self):
		self.assertEqual(self.client.get('/api/trips/').status_code, 401)
