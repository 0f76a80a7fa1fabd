from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from services.matching import MatchCache, MatchFinder
from trips.models import Trip
from trips.tests import RouteFixtureMixin, make_package, make_trip
from .models import Package
from .services import PackageNotFoundError, compute_pricing, estimate_delivery_days, expire_stale_packages
from .tasks import expire_stale_packages_task


class PricingTests(TestCase):
	def test_reward_is_rate_times_weight(self):
		pricing = compute_pricing(2, 100)
		self.assertEqual(pricing.estimated_reward, Decimal('30.00'))
		self.assertEqual(pricing.traditional_cost, Decimal('75.00'))
		self.assertEqual(pricing.savings, 60)

	def test_reward_is_capped_by_max_reward(self):
		pricing = compute_pricing(10, 40)
		self.assertEqual(pricing.estimated_reward, Decimal('40.00'))
		self.assertEqual(pricing.traditional_cost, Decimal('100.00'))


class PackageLifecycleTests(RouteFixtureMixin, TestCase):
	def test_new_package_is_pending_for_thirty_days(self):
		package = make_package(self.sender, self.jfk, self.lax, weight=2)

		self.assertEqual(package.status, 'PENDING')
		remaining = package.expires_at - timezone.now()
		self.assertGreater(remaining, timedelta(days=29, hours=23))
		self.assertLessEqual(remaining, timedelta(days=30))

	def test_sweep_expires_only_stale_pending_packages(self):
		stale = make_package(self.sender, self.jfk, self.lax)
		fresh = make_package(self.sender, self.jfk, self.lax)
		cancelled = make_package(self.sender, self.jfk, self.lax)
		past = timezone.now() - timedelta(hours=1)
		Package.objects.filter(id__in=[stale.id, cancelled.id]).update(expires_at=past)
		Package.objects.filter(id=cancelled.id).update(status='CANCELLED')

		self.assertEqual(expire_stale_packages(), 1)

		self.assertEqual(Package.objects.get(id=stale.id).status, 'EXPIRED')
		self.assertEqual(Package.objects.get(id=fresh.id).status, 'PENDING')
		self.assertEqual(Package.objects.get(id=cancelled.id).status, 'CANCELLED')

	def test_sweep_task_returns_count(self):
		stale = make_package(self.sender, self.jfk, self.lax)
		Package.objects.filter(id=stale.id).update(expires_at=timezone.now() - timedelta(minutes=5))

		self.assertEqual(expire_stale_packages_task.delay().get(), 1)

	def test_delivery_estimate_improves_with_route_activity(self):
		self.assertEqual(estimate_delivery_days(self.jfk.id, self.lax.id), 5)
		for _ in range(3):
			make_trip(self.traveler, self.jfk, self.lax, days_ahead=3)
		self.assertEqual(estimate_delivery_days(self.jfk.id, self.lax.id), 4)


class FindMatchingTripsTests(RouteFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.package = make_package(self.sender, self.jfk, self.lax, weight=2)
		self.finder = MatchFinder(cache=MatchCache())

	def test_exact_trips_ordered_by_departure_then_nearby(self):
		later = make_trip(self.traveler, self.jfk, self.lax, days_ahead=3)
		sooner = make_trip(self.traveler, self.jfk, self.lax, days_ahead=1)
		nearby = make_trip(self.traveler, self.ewr, self.lax, days_ahead=2)

		results = self.finder.find_matching_trips(self.package.id)

		self.assertEqual([r.entity.id for r in results], [sooner.id, later.id, nearby.id])
		self.assertEqual([r.match_type for r in results], ['exact', 'exact', 'nearby'])

	def test_excludes_departed_full_and_inactive_trips(self):
		make_trip(self.traveler, self.jfk, self.lax, days_ahead=-1)
		make_trip(self.traveler, self.jfk, self.lax, space=1)
		cancelled = make_trip(self.traveler, self.jfk, self.lax)
		Trip.objects.filter(id=cancelled.id).update(status='CANCELLED')
		make_trip(self.traveler, self.jfk, self.sfo)

		self.assertEqual(self.finder.find_matching_trips(self.package.id), [])

	def test_either_endpoint_beyond_radius_is_excluded(self):
		make_trip(self.traveler, self.ewr, self.sfo)
		make_trip(self.traveler, self.sfo, self.lax)
		near = make_trip(self.traveler, self.ewr, self.lax)

		results = self.finder.find_matching_trips(self.package.id)

		self.assertEqual([r.entity.id for r in results], [near.id])
		self.assertEqual(results[0].match_type, 'nearby')

	def test_missing_package_raises_not_found(self):
		with self.assertRaises(PackageNotFoundError):
			self.finder.find_matching_trips(555555)


class PackageApiTests(RouteFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.client = APIClient()
		self.client.force_authenticate(user=self.sender)

	def _payload(self, **overrides):
		now = timezone.now()
		payload = {
			'origin_id': self.jfk.id,
			'destination_id': self.lax.id,
			'description': 'Two paperback novels',
			'weight': '2.00',
			'declared_value': '40.00',
			'category': 'BOOKS',
			'pickup_address': '1 Main St',
			'delivery_address': '2 Ocean Ave',
			'pickup_window_start': now.isoformat(),
			'pickup_window_end': (now + timedelta(days=2)).isoformat(),
			'receiver_name': 'Rita Receiver',
			'receiver_phone': '5550000000',
			'max_reward': '100.00',
		}
		payload.update(overrides)
		return payload

	def test_create_package_prices_it(self):
		response = self.client.post('/api/parcels/', self._payload(), format='json')

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'PENDING')
		self.assertEqual(response.data['estimated_reward'], '30.00')

	def test_traveler_only_user_cannot_post_package(self):
		self.client.force_authenticate(user=self.traveler)
		response = self.client.post('/api/parcels/', self._payload(), format='json')
		self.assertEqual(response.status_code, 403)

	def test_search_by_urgency(self):
		urgent = make_package(self.sender, self.jfk, self.lax, urgent=True)
		make_package(self.sender, self.jfk, self.lax)

		response = self.client.get('/api/parcels/', {'urgent': 'true'})

		self.assertEqual(response.data['total'], 1)
		self.assertEqual(response.data['packages'][0]['id'], urgent.id)

	def test_search_without_urgency_returns_all(self):
		make_package(self.sender, self.jfk, self.lax, urgent=True)
		make_package(self.sender, self.jfk, self.lax)

		response = self.client.get('/api/parcels/')

		self.assertEqual(response.data['total'], 2)

	def test_quote(self):
		response = self.client.get('/api/parcels/quote/', {
			'weight': '2', 'origin_id': self.jfk.id, 'destination_id': self.lax.id,
		})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['estimated_reward'], Decimal('24.00'))
		self.assertEqual(response.data['traditional_cost'], Decimal('67.20'))
		self.assertEqual(response.data['savings'], 64)
		self.assertEqual(response.data['estimated_days'], 5)

	def test_cancel_by_other_user_is_forbidden(self):
		package = make_package(self.sender, self.jfk, self.lax)
		self.client.force_authenticate(user=self.traveler)

		response = self.client.post(f'/api/parcels/{package.id}/cancel/')

		self.assertEqual(response.status_code, 403)

	def test_missing_package_is_404(self):
		response = self.client.get('/api/parcels/31337/')
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'package_not_found')
