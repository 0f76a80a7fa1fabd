import re
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.db.models import F
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from common.exceptions import InvalidTransitionError, NotParticipantError
from parcels.models import Package
from services.match_management import (
	ConcurrentUpdateError,
	InvalidHandoffCodeError,
	MatchRequestExpiredError,
	OpenMatchRequestExistsError,
	accept_match_request,
	create_match_request,
	decline_match_request,
	expire_stale_match_requests,
	generate_code_pair,
	generate_handoff_code,
	pay_match_request,
	update_match_tracking,
)
from services.match_management.match_request_lifecycle import _cas_update
from trips.models import Trip
from trips.services import cancel_trip
from trips.tests import RouteFixtureMixin, make_package, make_trip
from .models import Match, MatchRequest
from .tasks import expire_stale_match_requests_task

CODE_PATTERN = re.compile(r'^[A-Z0-9]{6}$')


class MatchFixtureMixin(RouteFixtureMixin):
	def setUp(self):
		super().setUp()
		self.stranger = User.objects.create_user(username='stranger', password='pass1234', role='both')
		self.trip = make_trip(self.traveler, self.jfk, self.lax, space=10)
		self.package = make_package(self.sender, self.jfk, self.lax, weight=2)

	def propose(self, package=None):
		return create_match_request(self.sender, self.trip.id, (package or self.package).id)

	def make_stale(self, match_request):
		MatchRequest.objects.filter(id=match_request.id).update(
			expires_at=timezone.now() - timedelta(minutes=1)
		)

	def paid_match(self, reference='pi_test_1'):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		return pay_match_request(self.sender, match_request.id, payment_reference=reference).match


class HandoffCodeTests(TestCase):
	def test_codes_are_six_uppercase_alphanumerics(self):
		for _ in range(50):
			self.assertRegex(generate_handoff_code(), CODE_PATTERN)

	def test_code_pair_is_distinct(self):
		with patch(
			'services.match_management.codes.generate_handoff_code',
			side_effect=['ABC123', 'ABC123', 'XYZ789'],
		):
			pickup, delivery = generate_code_pair()
		self.assertEqual((pickup, delivery), ('ABC123', 'XYZ789'))


class MatchRequestLifecycleTests(MatchFixtureMixin, TestCase):
	def test_create_is_pending_for_twenty_four_hours(self):
		match_request = self.propose()

		self.assertEqual(match_request.status, 'pending')
		self.assertEqual(match_request.proposed_by, 'sender')
		self.assertEqual(match_request.reward, self.package.estimated_reward)
		window = match_request.expires_at - match_request.created_at
		self.assertAlmostEqual(window.total_seconds(), 24 * 3600, delta=5)

	def test_create_schedules_expiry_after_commit(self):
		with patch('matches.tasks.expire_match_request_task.apply_async') as scheduled:
			with self.captureOnCommitCallbacks(execute=True):
				match_request = self.propose()

		scheduled.assert_called_once_with((match_request.id,), eta=match_request.expires_at)

	def test_second_open_request_for_pair_is_rejected(self):
		self.propose()
		with self.assertRaises(OpenMatchRequestExistsError):
			create_match_request(self.traveler, self.trip.id, self.package.id)

	def test_stranger_cannot_propose(self):
		with self.assertRaises(NotParticipantError):
			create_match_request(self.stranger, self.trip.id, self.package.id)

	def test_proposer_cannot_answer_own_request(self):
		match_request = self.propose()
		with self.assertRaises(NotParticipantError):
			accept_match_request(self.sender, match_request.id)

	def test_accept_then_accept_again_is_invalid(self):
		match_request = self.propose()

		accepted = accept_match_request(self.traveler, match_request.id)
		self.assertEqual(accepted.status, 'accepted')
		self.assertIsNotNone(accepted.accepted_at)

		with self.assertRaises(InvalidTransitionError):
			accept_match_request(self.traveler, match_request.id)

	def test_declined_request_cannot_be_accepted(self):
		match_request = self.propose()
		declined = decline_match_request(self.traveler, match_request.id)
		self.assertEqual(declined.status, 'declined')

		with self.assertRaises(InvalidTransitionError):
			accept_match_request(self.traveler, match_request.id)

	def test_stale_request_expires_when_answered(self):
		match_request = self.propose()
		self.make_stale(match_request)

		with self.assertRaises(MatchRequestExpiredError):
			accept_match_request(self.traveler, match_request.id)

		self.assertEqual(MatchRequest.objects.get(id=match_request.id).status, 'expired')

	def test_sweep_only_expires_stale_pending_requests(self):
		stale = self.propose()
		self.make_stale(stale)
		other_package = make_package(self.sender, self.jfk, self.lax, weight=1)
		answered = self.propose(other_package)
		accept_match_request(self.traveler, answered.id)
		self.make_stale(answered)
		fresh = self.propose(make_package(self.sender, self.jfk, self.lax, weight=1))

		self.assertEqual(expire_stale_match_requests(), 1)

		self.assertEqual(MatchRequest.objects.get(id=stale.id).status, 'expired')
		self.assertEqual(MatchRequest.objects.get(id=answered.id).status, 'accepted')
		self.assertEqual(MatchRequest.objects.get(id=fresh.id).status, 'pending')

	def test_sweep_task_and_command(self):
		self.make_stale(self.propose())
		self.assertEqual(expire_stale_match_requests_task.delay().get(), 1)

		self.make_stale(self.propose(make_package(self.sender, self.jfk, self.lax, weight=1)))
		out = StringIO()
		call_command('process_match_request_expiry', stdout=out)
		self.assertIn('Expired 1 match request(s).', out.getvalue())

	def test_pair_can_be_proposed_again_after_expiry(self):
		first = self.propose()
		self.make_stale(first)

		second = self.propose()

		self.assertNotEqual(first.id, second.id)
		self.assertEqual(MatchRequest.objects.get(id=first.id).status, 'expired')

	def test_pay_requires_acceptance(self):
		match_request = self.propose()

		with self.assertRaises(InvalidTransitionError):
			pay_match_request(self.sender, match_request.id)

		self.assertFalse(Match.objects.exists())

	def test_only_sender_pays(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)

		with self.assertRaises(NotParticipantError):
			pay_match_request(self.traveler, match_request.id)

	def test_pay_creates_one_match_with_codes(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)

		result = pay_match_request(self.sender, match_request.id, payment_reference='pi_123')

		self.assertTrue(result.created)
		self.assertEqual(result.match_request.status, 'paid')
		self.assertEqual(result.match_request.payment_status, 'succeeded')
		self.assertEqual(result.match_request.escrow_status, 'held')
		self.assertRegex(result.match.pickup_code, CODE_PATTERN)
		self.assertRegex(result.match.delivery_code, CODE_PATTERN)
		self.assertNotEqual(result.match.pickup_code, result.match.delivery_code)
		self.assertEqual(Package.objects.get(id=self.package.id).status, 'MATCHED')
		self.assertEqual(Trip.objects.get(id=self.trip.id).space_available, 8)

	def test_repeat_payment_with_same_reference_is_idempotent(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		first = pay_match_request(self.sender, match_request.id, payment_reference='pi_123')

		again = pay_match_request(self.sender, match_request.id, payment_reference='pi_123')

		self.assertFalse(again.created)
		self.assertEqual(again.match.id, first.match.id)
		self.assertEqual(Match.objects.count(), 1)

		with self.assertRaises(InvalidTransitionError):
			pay_match_request(self.sender, match_request.id, payment_reference='pi_other')
		self.assertEqual(Match.objects.count(), 1)

	def test_accepted_request_cannot_be_paid_after_trip_cancelled(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		cancel_trip(self.traveler, self.trip.id)

		with self.assertRaises(InvalidTransitionError):
			pay_match_request(self.sender, match_request.id, payment_reference='pi_x')

		self.assertFalse(Match.objects.exists())
		self.assertEqual(MatchRequest.objects.get(id=match_request.id).status, 'accepted')
		self.assertEqual(Trip.objects.get(id=self.trip.id).space_available, 10)
		self.assertEqual(Package.objects.get(id=self.package.id).status, 'PENDING')

	def test_accepted_request_cannot_be_paid_after_departure(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		Trip.objects.filter(id=self.trip.id).update(departure_date=timezone.now() - timedelta(hours=1))

		with self.assertRaises(InvalidTransitionError):
			pay_match_request(self.sender, match_request.id)

		self.assertFalse(Match.objects.exists())

	def test_request_on_cancelled_trip_cannot_be_accepted(self):
		match_request = self.propose()
		cancel_trip(self.traveler, self.trip.id)

		with self.assertRaises(InvalidTransitionError):
			accept_match_request(self.traveler, match_request.id)

		self.assertEqual(MatchRequest.objects.get(id=match_request.id).status, 'pending')

	def test_request_on_cancelled_trip_can_still_be_declined(self):
		match_request = self.propose()
		cancel_trip(self.traveler, self.trip.id)

		self.assertEqual(decline_match_request(self.traveler, match_request.id).status, 'declined')

	def test_stale_version_loses_compare_and_swap(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		stale = MatchRequest.objects.get(id=match_request.id)
		pay_match_request(self.sender, match_request.id, payment_reference='pi_first')

		with self.assertRaises(ConcurrentUpdateError):
			_cas_update(stale, 'accepted', status='paid', payment_reference='pi_second')

		self.assertEqual(Match.objects.count(), 1)
		self.assertEqual(MatchRequest.objects.get(id=match_request.id).payment_reference, 'pi_first')

	def test_payment_racing_a_concurrent_writer_creates_no_match(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		stale = MatchRequest.objects.get(id=match_request.id)
		MatchRequest.objects.filter(id=match_request.id).update(version=F('version') + 1)

		with patch(
			'services.match_management.match_request_lifecycle._get_for_update',
			return_value=stale,
		):
			with self.assertRaises(ConcurrentUpdateError):
				pay_match_request(self.sender, match_request.id, payment_reference='pi_race')

		self.assertFalse(Match.objects.exists())
		self.assertEqual(MatchRequest.objects.get(id=match_request.id).status, 'accepted')

	def test_existing_match_row_blocks_a_second_match(self):
		match_request = self.propose()
		accept_match_request(self.traveler, match_request.id)
		existing = Match.objects.create(
			match_request=match_request,
			trip=self.trip,
			parcel=self.package,
			sender=self.sender,
			traveler=self.traveler,
			pickup_code='AAAAAA',
			delivery_code='BBBBBB',
		)

		with self.assertRaises(ConcurrentUpdateError):
			pay_match_request(self.sender, match_request.id, payment_reference='pi_dup')

		self.assertEqual(list(Match.objects.values_list('id', flat=True)), [existing.id])
		self.assertEqual(MatchRequest.objects.get(id=match_request.id).status, 'accepted')
		self.assertEqual(Package.objects.get(id=self.package.id).status, 'PENDING')


class MatchTrackingTests(MatchFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.match = self.paid_match()

	def track(self, user, step, **data):
		return update_match_tracking(user, self.match.id, step, data)

	def test_pickup_needs_the_pickup_code(self):
		with self.assertRaises(InvalidHandoffCodeError):
			self.track(self.traveler, 'picked_up', code='WRONG1')
		with self.assertRaises(InvalidHandoffCodeError):
			self.track(self.traveler, 'picked_up')

	def test_steps_cannot_be_skipped(self):
		with self.assertRaises(InvalidTransitionError):
			self.track(self.traveler, 'delivered', code=self.match.delivery_code)

	def test_sender_cannot_record_pickup(self):
		with self.assertRaises(NotParticipantError):
			self.track(self.sender, 'picked_up', code=self.match.pickup_code)

	def test_full_hand_off_releases_escrow(self):
		picked = self.track(self.traveler, 'picked_up', code=self.match.pickup_code.lower())
		self.assertEqual(picked.status, 'in_transit')
		self.assertEqual(MatchRequest.objects.get(id=self.match.match_request_id).status, 'confirmed')

		self.track(self.traveler, 'in_transit', notes='Boarded')
		delivered = self.track(self.traveler, 'delivered', code=self.match.delivery_code)

		self.assertEqual(delivered.status, 'delivered')
		self.assertIsNotNone(delivered.picked_up_at)
		self.assertIsNotNone(delivered.delivered_at)
		self.assertEqual(delivered.notes, 'Boarded')
		self.assertEqual(MatchRequest.objects.get(id=self.match.match_request_id).escrow_status, 'released')
		self.assertEqual(User.objects.get(id=self.traveler.id).completed_deliveries, 1)

	def test_tracking_never_goes_backwards(self):
		self.track(self.traveler, 'picked_up', code=self.match.pickup_code)
		self.track(self.traveler, 'in_transit')

		with self.assertRaises(InvalidTransitionError):
			self.track(self.traveler, 'picked_up', code=self.match.pickup_code)
		with self.assertRaises(InvalidTransitionError):
			self.track(self.traveler, 'in_transit')

		self.assertEqual(Match.objects.get(id=self.match.id).tracking_step, 'in_transit')

	def test_sender_confirms_delivery_without_code(self):
		self.track(self.traveler, 'picked_up', code=self.match.pickup_code)
		self.track(self.traveler, 'in_transit')

		delivered = self.track(self.sender, 'delivered')

		self.assertEqual(delivered.status, 'delivered')

	def test_delivered_match_is_closed(self):
		self.track(self.traveler, 'picked_up', code=self.match.pickup_code)
		self.track(self.traveler, 'in_transit')
		self.track(self.sender, 'delivered')

		with self.assertRaises(InvalidTransitionError):
			self.track(self.sender, 'delivered')

	def test_stranger_cannot_track(self):
		with self.assertRaises(NotParticipantError):
			self.track(self.stranger, 'picked_up', code=self.match.pickup_code)


class MatchApiTests(MatchFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.sender_client = APIClient()
		self.sender_client.force_authenticate(user=self.sender)
		self.traveler_client = APIClient()
		self.traveler_client.force_authenticate(user=self.traveler)

	def test_request_accept_pay_flow(self):
		created = self.sender_client.post('/api/match-requests/', {
			'trip_id': self.trip.id, 'parcel_id': self.package.id, 'message': 'Two books',
		}, format='json')
		self.assertEqual(created.status_code, 201)
		request_id = created.data['id']

		accepted = self.traveler_client.post(f'/api/match-requests/{request_id}/accept/')
		self.assertEqual(accepted.status_code, 200)
		self.assertEqual(accepted.data['match_request']['status'], 'accepted')

		paid = self.sender_client.post(
			f'/api/match-requests/{request_id}/pay/', {'payment_reference': 'pi_api'}, format='json'
		)
		self.assertEqual(paid.status_code, 201)
		self.assertRegex(paid.data['match']['pickup_code'], CODE_PATTERN)
		match_id = paid.data['match']['id']

		repeated = self.sender_client.post(
			f'/api/match-requests/{request_id}/pay/', {'payment_reference': 'pi_api'}, format='json'
		)
		self.assertEqual(repeated.status_code, 200)
		self.assertEqual(repeated.data['match']['id'], match_id)

		traveler_view = self.traveler_client.get(f'/api/matches/{match_id}/')
		self.assertIsNone(traveler_view.data['pickup_code'])
		self.assertIsNone(traveler_view.data['delivery_code'])

	def test_expired_request_answer_is_conflict(self):
		match_request = self.propose()
		self.make_stale(match_request)

		response = self.traveler_client.post(f'/api/match-requests/{match_request.id}/accept/')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'match_request_expired')

	def test_missing_request_is_404(self):
		response = self.sender_client.get('/api/match-requests/99999/')
		self.assertEqual(response.status_code, 404)

	def test_tracking_endpoint(self):
		match = self.paid_match()

		response = self.traveler_client.patch(
			f'/api/matches/{match.id}/tracking/',
			{'tracking_step': 'picked_up', 'code': match.pickup_code},
			format='json',
		)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['match']['tracking_step'], 'picked_up')

	def test_tracking_with_bad_code_is_400(self):
		match = self.paid_match()

		response = self.traveler_client.patch(
			f'/api/matches/{match.id}/tracking/',
			{'tracking_step': 'picked_up', 'code': 'NOPE00'},
			format='json',
		)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'invalid_handoff_code')


@override_settings(PAYMENT_WEBHOOK_SECRET='whsec_test')
class PaymentWebhookTests(MatchFixtureMixin, TestCase):
	url = '/api/match-requests/webhooks/payment/'

	def setUp(self):
		super().setUp()
		self.client = APIClient()
		self.match_request = self.propose()
		accept_match_request(self.traveler, self.match_request.id)

	def post(self, event_type, reference='pi_hook', secret='whsec_test'):
		return self.client.post(self.url, {
			'type': event_type,
			'match_request_id': self.match_request.id,
			'payment_reference': reference,
		}, format='json', HTTP_X_WEBHOOK_SECRET=secret)

	def test_bad_secret_is_rejected(self):
		response = self.post('payment_intent.succeeded', secret='nope')
		self.assertEqual(response.status_code, 403)
		self.assertFalse(Match.objects.exists())

	def test_redelivered_success_creates_one_match(self):
		first = self.post('payment_intent.succeeded')
		second = self.post('payment_intent.succeeded')

		self.assertEqual(first.status_code, 200)
		self.assertEqual(second.data['match_id'], first.data['match_id'])
		self.assertEqual(Match.objects.count(), 1)
		self.assertEqual(MatchRequest.objects.get(id=self.match_request.id).status, 'paid')

	def test_failure_keeps_request_accepted(self):
		response = self.post('payment_intent.payment_failed')

		self.assertEqual(response.status_code, 200)
		match_request = MatchRequest.objects.get(id=self.match_request.id)
		self.assertEqual(match_request.status, 'accepted')
		self.assertEqual(match_request.payment_status, 'failed')
