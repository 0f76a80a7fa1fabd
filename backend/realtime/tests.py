import inspect
from unittest.mock import patch

from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase

from accounts.models import User
from .consumers import NOTIFICATION_EVENTS, NotificationConsumer
from .notifications import notify_users, user_group


class NotificationConsumerTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='listener', password='pass1234', role='sender')

	async def _connect(self, user):
		communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
		communicator.scope['user'] = user
		connected, _ = await communicator.connect()
		return communicator, connected

	async def test_anonymous_is_rejected(self):
		communicator, connected = await self._connect(AnonymousUser())
		self.assertFalse(connected)

	async def test_user_receives_events_sent_to_their_group(self):
		communicator, connected = await self._connect(self.user)
		self.assertTrue(connected)
		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')

		await get_channel_layer().group_send(user_group(self.user.id), {
			'type': 'match_request_accepted',
			'match_request_id': 7,
			'message': 'Your match request was accepted.',
		})

		event = await communicator.receive_json_from()
		self.assertEqual(event['type'], 'match_request_accepted')
		self.assertEqual(event['match_request_id'], 7)
		await communicator.disconnect()

	async def test_ping(self):
		communicator, _ = await self._connect(self.user)
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'ping'})

		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})
		await communicator.disconnect()

	async def test_dispute_resolved_is_forwarded(self):
		communicator, _ = await self._connect(self.user)
		await communicator.receive_json_from()

		await get_channel_layer().group_send(user_group(self.user.id), {
			'type': 'dispute_resolved',
			'dispute_id': 3,
		})

		event = await communicator.receive_json_from()
		self.assertEqual(event, {'type': 'dispute_resolved', 'dispute_id': 3})
		await communicator.disconnect()

	def test_every_event_type_has_a_handler(self):
		for event_type in NOTIFICATION_EVENTS:
			handler = NotificationConsumer.__dict__.get(event_type)
			self.assertIsNotNone(handler, event_type)
			self.assertTrue(inspect.iscoroutinefunction(handler), event_type)


class NotifyUsersTests(TestCase):
	def test_missing_user_ids_are_skipped(self):
		self.assertEqual(notify_users([None, 0], 'dispute_opened'), 0)

	@patch('realtime.notifications.get_channel_layer')
	def test_channel_layer_failure_is_not_raised(self, get_layer):
		get_layer.return_value.group_send.side_effect = RuntimeError('redis down')
		self.assertEqual(notify_users([1, 2], 'dispute_opened', 'hello'), 0)
