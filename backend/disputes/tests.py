from datetime import timedelta
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from common.exceptions import InvalidTransitionError, NotParticipantError
from matches.models import Match, MatchRequest
from matches.tests import MatchFixtureMixin
from services.disputes import (
	OpenDisputeExistsError,
	add_dispute_timeline_entry,
	can_transition,
	create_dispute,
	flag_overdue_disputes,
	make_offer,
	resolve_dispute,
)
from services.match_management import report_issue, update_match_tracking
from .models import Dispute
from .tasks import flag_overdue_disputes_task


class DisputeFixtureMixin(MatchFixtureMixin):
	def setUp(self):
		super().setUp()
		self.support = User.objects.create_user(username='support', password='pass1234', is_staff=True)
		self.match = self.paid_match()

	def open_dispute(self, user=None):
		return report_issue(user or self.sender, self.match.id, 'damaged', 'Box arrived crushed')

	def sequences(self, dispute):
		return list(dispute.timeline.order_by('sequence').values_list('sequence', flat=True))


class DisputeTransitionTableTests(TestCase):
	def test_allowed_and_forbidden_moves(self):
		self.assertTrue(can_transition('open', 'review'))
		self.assertTrue(can_transition('offer', 'resolved'))
		self.assertTrue(can_transition('resolved', 'closed'))
		self.assertFalse(can_transition('open', 'resolved'))
		self.assertFalse(can_transition('closed', 'open'))
		self.assertFalse(can_transition('resolved', 'review'))


class DisputeWorkflowTests(DisputeFixtureMixin, TestCase):
	def test_report_issue_opens_dispute_and_marks_match(self):
		dispute = self.open_dispute()

		self.assertEqual(dispute.status, 'open')
		self.assertEqual(Match.objects.get(id=self.match.id).status, 'disputed')
		opened = dispute.timeline.get()
		self.assertEqual((opened.sequence, opened.type, opened.actor_role), (1, 'opened', 'sender'))
		self.assertAlmostEqual(
			(dispute.first_reply_due - dispute.created_at).total_seconds(), 24 * 3600, delta=5
		)
		self.assertAlmostEqual(
			(dispute.resolution_due - dispute.created_at).total_seconds(), 5 * 24 * 3600, delta=5
		)

	def test_disputed_match_keeps_tracking_but_accepts_no_updates(self):
		update_match_tracking(self.traveler, self.match.id, 'picked_up', {'code': self.match.pickup_code})
		self.open_dispute(self.traveler)

		match = Match.objects.get(id=self.match.id)
		self.assertEqual(match.tracking_step, 'picked_up')
		with self.assertRaises(InvalidTransitionError):
			update_match_tracking(self.traveler, self.match.id, 'in_transit', {})

	def test_one_active_dispute_per_match(self):
		self.open_dispute()
		with self.assertRaises(OpenDisputeExistsError):
			self.open_dispute(self.traveler)

	def test_stranger_cannot_report(self):
		with self.assertRaises(NotParticipantError):
			create_dispute(self.stranger, self.match.id, 'lost', 'Never arrived')

	def test_timeline_grows_in_order(self):
		dispute = self.open_dispute()

		add_dispute_timeline_entry(dispute.id, self.traveler, 'It was fine when I handed it over')
		add_dispute_timeline_entry(
			dispute.id, self.sender, 'Photos attached', entry_type='evidence',
			payload={'urls': ['https://example.com/box.jpg']},
		)
		add_dispute_timeline_entry(dispute.id, self.support, 'Looking into it', status='review')

		entries = list(dispute.timeline.order_by('sequence'))
		self.assertEqual([e.sequence for e in entries], [1, 2, 3, 4])
		timestamps = [e.timestamp for e in entries]
		self.assertEqual(timestamps, sorted(timestamps))
		self.assertEqual(len(set(timestamps)), 4)
		self.assertEqual(entries[3].type, 'status_change')
		self.assertEqual((entries[3].from_status, entries[3].to_status), ('open', 'review'))

		dispute.refresh_from_db()
		self.assertEqual(dispute.status, 'review')
		self.assertEqual(dispute.evidence, ['https://example.com/box.jpg'])
		self.assertIsNotNone(dispute.first_replied_at)

	def test_timeline_entries_are_append_only(self):
		dispute = self.open_dispute()
		entry = dispute.timeline.get()

		entry.message = 'rewritten'
		with self.assertRaises(ValidationError):
			entry.save()
		with self.assertRaises(ValidationError):
			entry.delete()

	def test_invalid_transition_adds_no_entry(self):
		dispute = self.open_dispute()

		with self.assertRaises(InvalidTransitionError):
			add_dispute_timeline_entry(dispute.id, self.support, 'Done', status='resolved')

		self.assertEqual(self.sequences(dispute), [1])
		self.assertEqual(Dispute.objects.get(id=dispute.id).status, 'open')

	def test_participants_may_only_escalate(self):
		dispute = self.open_dispute()

		with self.assertRaises(NotParticipantError):
			add_dispute_timeline_entry(dispute.id, self.sender, 'Please review', status='review')

		add_dispute_timeline_entry(dispute.id, self.sender, 'Nobody answered', status='escalated')
		self.assertEqual(Dispute.objects.get(id=dispute.id).status, 'escalated')

	def test_offer_then_resolve_refunds_escrow(self):
		dispute = self.open_dispute()
		add_dispute_timeline_entry(dispute.id, self.support, 'Reviewing', status='review')

		offer = make_offer(dispute.id, self.support, 'Full refund', {'refund_amount': '30.00'})
		self.assertEqual((offer.type, offer.to_status), ('offer', 'offer'))

		resolved = resolve_dispute(dispute.id, self.support, 'refunded', 'Refund issued')

		self.assertEqual(resolved.status, 'resolved')
		self.assertEqual(resolved.escrow_outcome, 'refunded')
		self.assertIsNotNone(resolved.resolved_at)
		self.assertEqual(MatchRequest.objects.get(id=self.match.match_request_id).escrow_status, 'refunded')
		self.assertEqual(self.sequences(dispute), [1, 2, 3, 4])

	def test_only_support_makes_offers_and_resolves(self):
		dispute = self.open_dispute()

		with self.assertRaises(NotParticipantError):
			make_offer(dispute.id, self.traveler, 'Half?', {'refund_amount': '15.00'})
		with self.assertRaises(NotParticipantError):
			resolve_dispute(dispute.id, self.sender, 'refunded')

	def test_closed_dispute_accepts_no_entries(self):
		dispute = self.open_dispute()
		add_dispute_timeline_entry(dispute.id, self.support, 'Reviewing', status='review')
		resolve_dispute(dispute.id, self.support, 'released')
		add_dispute_timeline_entry(dispute.id, self.support, 'Closing', status='closed')

		with self.assertRaises(InvalidTransitionError):
			add_dispute_timeline_entry(dispute.id, self.sender, 'One more thing')


class DisputeSlaTests(DisputeFixtureMixin, TestCase):
	def test_overdue_first_reply_is_flagged_once(self):
		dispute = self.open_dispute()
		later = timezone.now() + timedelta(hours=25)

		self.assertEqual(flag_overdue_disputes(now=later), 1)
		self.assertEqual(flag_overdue_disputes(now=later), 0)

		dispute.refresh_from_db()
		self.assertTrue(dispute.first_reply_breached)
		self.assertFalse(dispute.resolution_breached)
		breach = dispute.timeline.order_by('-sequence').first()
		self.assertEqual((breach.type, breach.actor_role), ('sla_breach', 'system'))

	def test_support_reply_stops_first_reply_clock(self):
		dispute = self.open_dispute()
		add_dispute_timeline_entry(dispute.id, self.support, 'On it')

		self.assertEqual(flag_overdue_disputes(now=timezone.now() + timedelta(hours=25)), 0)

	def test_resolution_deadline(self):
		dispute = self.open_dispute()
		add_dispute_timeline_entry(dispute.id, self.support, 'On it')

		self.assertEqual(flag_overdue_disputes(now=timezone.now() + timedelta(days=6)), 1)
		self.assertTrue(Dispute.objects.get(id=dispute.id).resolution_breached)

	def test_resolved_disputes_are_not_flagged(self):
		dispute = self.open_dispute()
		add_dispute_timeline_entry(dispute.id, self.support, 'Reviewing', status='review')
		resolve_dispute(dispute.id, self.support, 'released')

		self.assertEqual(flag_overdue_disputes(now=timezone.now() + timedelta(days=6)), 0)

	def test_task_and_command(self):
		Dispute.objects.filter(id=self.open_dispute().id).update(
			first_reply_due=timezone.now() - timedelta(minutes=1)
		)
		self.assertEqual(flag_overdue_disputes_task.delay().get(), 1)

		out = StringIO()
		call_command('flag_overdue_disputes', stdout=out)
		self.assertIn('Flagged 0 SLA breach(es).', out.getvalue())


class DisputeApiTests(DisputeFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.client = APIClient()
		self.client.force_authenticate(user=self.sender)

	def test_open_and_read_dispute(self):
		created = self.client.post('/api/disputes/', {
			'match_id': self.match.id,
			'reason': 'late',
			'description': 'Two days late',
		}, format='json')
		self.assertEqual(created.status_code, 201)

		detail = self.client.get(f"/api/disputes/{created.data['id']}/")
		self.assertEqual(detail.data['status'], 'open')
		self.assertEqual([e['sequence'] for e in detail.data['timeline']], [1])

	def test_comment_endpoint(self):
		dispute = self.open_dispute()

		response = self.client.post(
			f'/api/disputes/{dispute.id}/timeline/', {'message': 'Any update?'}, format='json'
		)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['sequence'], 2)
		self.assertEqual(response.data['actor_role'], 'sender')

	def test_participant_cannot_resolve(self):
		dispute = self.open_dispute()

		response = self.client.post(
			f'/api/disputes/{dispute.id}/resolve/', {'escrow_outcome': 'refunded'}, format='json'
		)

		self.assertEqual(response.status_code, 403)

	def test_stranger_cannot_read(self):
		dispute = self.open_dispute()
		self.client.force_authenticate(user=self.stranger)

		response = self.client.get(f'/api/disputes/{dispute.id}/')

		self.assertEqual(response.status_code, 403)
