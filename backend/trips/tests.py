from datetime import timedelta
from unittest.mock import Mock

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from locations.tests import make_location
from parcels.models import Package
from parcels.services import create_package
from services.matching import MatchCache, MatchFinder, merge_candidates
from services.matching.nearby import NearbyCandidate
from .models import Trip
from .services import TripNotFoundError


def make_trip(traveler, origin, destination, days_ahead=7, space=10, **extra):
	return Trip.objects.create(
		traveler=traveler,
		origin=origin,
		destination=destination,
		departure_date=timezone.now() + timedelta(days=days_ahead),
		space_available=space,
		bag_types=extra.pop('bag_types', ['CHECKED']),
		**extra
	)


def make_package(sender, origin, destination, weight=2, **extra):
	now = timezone.now()
	return create_package(
		sender,
		origin.id,
		destination.id,
		weight,
		extra.pop('max_reward', 100),
		description=extra.pop('description', 'Books'),
		declared_value=50,
		category=extra.pop('category', 'BOOKS'),
		pickup_address='1 Main St',
		delivery_address='2 Ocean Ave',
		pickup_window_start=now,
		pickup_window_end=now + timedelta(days=3),
		receiver_name='Rita Receiver',
		receiver_phone='5550000000',
		**extra
	)


class RouteFixtureMixin:
	def setUp(self):
		cache.clear()
		self.traveler = User.objects.create_user(username='traveler', password='pass1234', role='traveler')
		self.sender = User.objects.create_user(username='sender', password='pass1234', role='sender')
		self.jfk = make_location('John F. Kennedy International', 'JFK', 40.64, -73.78, city='New York')
		self.ewr = make_location('Newark Liberty International', 'EWR', 40.69, -74.17, city='Newark')
		self.lax = make_location('Los Angeles International', 'LAX', 33.94, -118.41, city='Los Angeles')
		self.sfo = make_location('San Francisco International', 'SFO', 37.62, -122.38, city='San Francisco')


class FindMatchingPackagesTests(RouteFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.trip = make_trip(self.traveler, self.jfk, self.lax, space=10)
		self.finder = MatchFinder(cache=MatchCache())

	def test_exact_route_package_is_matched(self):
		package = make_package(self.sender, self.jfk, self.lax, weight=2)

		results = self.finder.find_matching_packages(self.trip.id)

		self.assertEqual([r.entity.id for r in results], [package.id])
		self.assertEqual(results[0].match_type, 'exact')

	def test_nearby_origin_package_follows_exact_matches(self):
		exact = make_package(self.sender, self.jfk, self.lax, weight=2)
		nearby = make_package(self.sender, self.ewr, self.lax, weight=3)

		results = self.finder.find_matching_packages(self.trip.id)

		self.assertEqual([r.entity.id for r in results], [exact.id, nearby.id])
		self.assertEqual(results[1].match_type, 'nearby')
		self.assertAlmostEqual(results[1].origin_distance_km, 33.3, delta=1.5)
		self.assertAlmostEqual(results[1].destination_distance_km, 0.0, places=3)

	def test_results_never_repeat_a_package(self):
		make_package(self.sender, self.jfk, self.lax, weight=2)
		make_package(self.sender, self.jfk, self.lax, weight=4)
		make_package(self.sender, self.ewr, self.lax, weight=1)

		ids = [r.entity.id for r in self.finder.find_matching_packages(self.trip.id)]

		self.assertEqual(len(ids), 3)
		self.assertEqual(len(ids), len(set(ids)))

	def test_filters_weight_status_expiry_and_far_destinations(self):
		make_package(self.sender, self.jfk, self.lax, weight=20)
		make_package(self.sender, self.ewr, self.sfo, weight=1)
		cancelled = make_package(self.sender, self.jfk, self.lax, weight=1)
		Package.objects.filter(id=cancelled.id).update(status='CANCELLED')
		expired = make_package(self.sender, self.jfk, self.lax, weight=1)
		Package.objects.filter(id=expired.id).update(expires_at=timezone.now() - timedelta(minutes=1))

		self.assertEqual(self.finder.find_matching_packages(self.trip.id), [])

	def test_far_origin_with_near_destination_is_excluded(self):
		make_package(self.sender, self.sfo, self.lax, weight=1)
		make_package(self.sender, self.sfo, self.ewr, weight=1)
		near = make_package(self.sender, self.ewr, self.lax, weight=1)

		results = self.finder.find_matching_packages(self.trip.id)

		self.assertEqual([r.entity.id for r in results], [near.id])

	def test_no_candidates_returns_empty_list(self):
		self.assertEqual(self.finder.find_matching_packages(self.trip.id), [])

	def test_missing_trip_raises_not_found(self):
		with self.assertRaises(TripNotFoundError):
			self.finder.find_matching_packages(987654)

	def test_results_are_served_from_cache(self):
		first = make_package(self.sender, self.jfk, self.lax, weight=2)
		self.finder.find_matching_packages(self.trip.id)

		make_package(self.sender, self.jfk, self.lax, weight=1)
		results = self.finder.find_matching_packages(self.trip.id)

		self.assertEqual([r.entity.id for r in results], [first.id])

	def test_cache_failure_falls_back_to_direct_search(self):
		backend = Mock()
		backend.get.side_effect = ConnectionError('redis down')
		backend.set.side_effect = ConnectionError('redis down')
		finder = MatchFinder(cache=MatchCache(backend=backend))
		package = make_package(self.sender, self.jfk, self.lax, weight=2)

		results = finder.find_matching_packages(self.trip.id)

		self.assertEqual([r.entity.id for r in results], [package.id])

	def test_nearby_pass_is_capped(self):
		for _ in range(25):
			make_package(self.sender, self.ewr, self.lax, weight=1)

		results = self.finder.find_matching_packages(self.trip.id)

		self.assertEqual(len(results), 20)
		self.assertTrue(all(r.match_type == 'nearby' for r in results))


class MergeCandidatesTests(TestCase):
	def test_exact_wins_over_nearby_duplicate(self):
		a, b, c = Mock(id=1), Mock(id=2), Mock(id=3)
		nearby = [NearbyCandidate(a, 0.0, 0.0), NearbyCandidate(c, 5.0, 1.0)]

		merged = merge_candidates([a, b], nearby)

		self.assertEqual([m.entity.id for m in merged], [1, 2, 3])
		self.assertEqual([m.match_type for m in merged], ['exact', 'exact', 'nearby'])


class TripApiTests(RouteFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.client = APIClient()
		self.client.force_authenticate(user=self.traveler)

	def test_create_trip(self):
		response = self.client.post('/api/trips/', {
			'origin_id': self.jfk.id,
			'destination_id': self.lax.id,
			'departure_date': (timezone.now() + timedelta(days=5)).isoformat(),
			'space_available': '8.5',
			'bag_types': ['CHECKED', 'CARRY_ON'],
		}, format='json')

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'ACTIVE')
		self.assertEqual(response.data['origin']['airport_code'], 'JFK')

	def test_create_trip_with_unknown_location_is_404(self):
		response = self.client.post('/api/trips/', {
			'origin_id': self.jfk.id,
			'destination_id': 999999,
			'departure_date': (timezone.now() + timedelta(days=5)).isoformat(),
			'space_available': '5',
			'bag_types': ['CHECKED'],
		}, format='json')

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'location_not_found')

	def test_sender_only_user_cannot_list_trip(self):
		self.client.force_authenticate(user=self.sender)
		response = self.client.post('/api/trips/', {
			'origin_id': self.jfk.id,
			'destination_id': self.lax.id,
			'departure_date': (timezone.now() + timedelta(days=5)).isoformat(),
			'space_available': '5',
			'bag_types': ['CHECKED'],
		}, format='json')

		self.assertEqual(response.status_code, 403)

	def test_detail_read_counts_views(self):
		trip = make_trip(self.traveler, self.jfk, self.lax)

		self.client.get(f'/api/trips/{trip.id}/')
		response = self.client.get(f'/api/trips/{trip.id}/')

		self.assertEqual(response.data['views'], 2)

	def test_cancel_twice_is_invalid_transition(self):
		trip = make_trip(self.traveler, self.jfk, self.lax)

		self.assertEqual(self.client.post(f'/api/trips/{trip.id}/cancel/').status_code, 200)
		response = self.client.post(f'/api/trips/{trip.id}/cancel/')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_transition')

	def test_only_owner_can_cancel(self):
		trip = make_trip(self.traveler, self.jfk, self.lax)
		self.client.force_authenticate(user=self.sender)

		response = self.client.post(f'/api/trips/{trip.id}/cancel/')

		self.assertEqual(response.status_code, 403)

	def test_search_filters_by_bag_type(self):
		carry_on = make_trip(self.traveler, self.jfk, self.lax, bag_types=['CARRY_ON'])
		make_trip(self.traveler, self.jfk, self.lax, bag_types=['CHECKED'])

		response = self.client.get('/api/trips/', {'bag_types': 'CARRY_ON'})

		self.assertEqual(response.data['total'], 1)
		self.assertEqual(response.data['trips'][0]['id'], carry_on.id)

	def test_matches_endpoint(self):
		trip = make_trip(self.traveler, self.jfk, self.lax)
		package = make_package(self.sender, self.ewr, self.lax, weight=2)

		response = self.client.get(f'/api/trips/{trip.id}/matches/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['matches'][0]['package']['id'], package.id)
		self.assertEqual(response.data['matches'][0]['match_type'], 'nearby')

	def test_matches_endpoint_for_missing_trip_is_404(self):
		response = self.client.get('/api/trips/424242/matches/')
		self.assertEqual(response.status_code, 404)
