import importlib
import os
import sys
from unittest.mock import Mock, patch

from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient


class HealthCheckTests(TestCase):
	def setUp(self):
		cache.clear()
		self.client = APIClient()

	def test_healthy(self):
		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'healthy')
		self.assertEqual(response.data['services']['cache'], 'healthy')

	@patch('airbar.views.get_match_cache')
	def test_cache_outage_is_reported(self, get_cache):
		get_cache.return_value = Mock(is_ready=Mock(return_value=False))

		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['cache'].startswith('unhealthy'))


class ProductionSettingsTests(SimpleTestCase):
	module = 'airbar.settings.prod'

	def tearDown(self):
		sys.modules.pop(self.module, None)

	def _load(self):
		sys.modules.pop(self.module, None)
		return importlib.import_module(self.module)

	def test_missing_webhook_secret_refuses_to_start(self):
		with patch.dict(os.environ, {'PAYMENT_WEBHOOK_SECRET': ''}):
			with self.assertRaises(ImproperlyConfigured):
				self._load()

	def test_webhook_secret_is_read_from_environment(self):
		with patch.dict(os.environ, {'PAYMENT_WEBHOOK_SECRET': 'whsec_live'}):
			prod = self._load()
		self.assertEqual(prod.PAYMENT_WEBHOOK_SECRET, 'whsec_live')
