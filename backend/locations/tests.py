from unittest.mock import Mock

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.utils import bounding_box, distance_km
from services.matching.cache import MatchCache
from .models import Location
from .services import LocationIndex, LocationNotFoundError
from .views import NearbyLocationsView


def make_location(name, code, lat, lon, city=None, country_code='US'):
	return Location.objects.create(
		name=name,
		city=city or name,
		country='United States',
		country_code=country_code,
		airport_code=code,
		type='AIRPORT',
		latitude=lat,
		longitude=lon,
	)


class GeoDistanceTests(TestCase):
	def test_identical_points_are_zero(self):
		self.assertEqual(distance_km(40.64, -73.78, 40.64, -73.78), 0.0)

	def test_distance_is_symmetric(self):
		there = distance_km(40.64, -73.78, 33.94, -118.41)
		back = distance_km(33.94, -118.41, 40.64, -73.78)
		self.assertAlmostEqual(there, back, places=9)

	def test_jfk_to_newark_is_about_thirty_km(self):
		self.assertAlmostEqual(distance_km(40.64, -73.78, 40.69, -74.17), 33.3, delta=1.5)

	def test_jfk_to_lax_is_cross_country(self):
		self.assertAlmostEqual(distance_km(40.64, -73.78, 33.94, -118.41), 3974, delta=30)

	def test_bounding_box_contains_radius(self):
		min_lat, max_lat, min_lon, max_lon, use_lon = bounding_box(40.64, -73.78, 50)
		self.assertTrue(use_lon)
		self.assertLess(min_lat, 40.64 - 0.44)
		self.assertGreater(max_lat, 40.64 + 0.44)
		self.assertLess(min_lon, -74.17)
		self.assertGreater(max_lon, -73.78 + 0.5)

	def test_bounding_box_near_pole_drops_longitude(self):
		self.assertFalse(bounding_box(89.5, 10.0, 100)[4])


class LocationIndexTests(TestCase):
	def setUp(self):
		cache.clear()
		self.index = LocationIndex()
		self.jfk = make_location('John F. Kennedy International', 'JFK', 40.64, -73.78, city='New York')
		self.ewr = make_location('Newark Liberty International', 'EWR', 40.69, -74.17, city='Newark')
		self.lax = make_location('Los Angeles International', 'LAX', 33.94, -118.41, city='Los Angeles')

	def test_find_exact_returns_both_endpoints(self):
		origin, destination = self.index.find_exact(self.jfk.id, self.lax.id)
		self.assertEqual(origin, self.jfk)
		self.assertEqual(destination, self.lax)

	def test_find_exact_missing_endpoint_raises(self):
		with self.assertRaises(LocationNotFoundError):
			self.index.find_exact(self.jfk.id, 999999)

	def test_find_nearby_orders_by_distance_and_filters_radius(self):
		nearby = self.index.find_nearby(40.64, -73.78, radius_km=50)

		self.assertEqual([item.location for item in nearby], [self.jfk, self.ewr])
		self.assertAlmostEqual(nearby[0].distance_km, 0.0, places=3)
		self.assertLess(nearby[1].distance_km, 50)

	def test_find_nearby_respects_limit(self):
		nearby = self.index.find_nearby(40.64, -73.78, radius_km=50, limit=1)
		self.assertEqual(len(nearby), 1)

	def test_find_nearby_uses_default_radius(self):
		nearby = self.index.find_nearby(34.0, -118.4)
		self.assertEqual([item.location for item in nearby], [self.lax])

	def test_nearby_sets_expire_with_match_results(self):
		match_cache = Mock(spec=MatchCache)
		match_cache.get.return_value = None

		LocationIndex(cache=match_cache).find_nearby(40.64, -73.78, radius_km=50)

		ttl = match_cache.set.call_args[0][2]
		self.assertEqual(ttl, MatchCache.MEDIUM)
		self.assertLess(ttl, MatchCache.LONG)

	def test_get_location_missing_raises(self):
		with self.assertRaises(LocationNotFoundError):
			self.index.get_location(424242)

	def test_search_by_city(self):
		results = self.index.search(city='new')
		self.assertEqual(set(results), {self.jfk, self.ewr})

	def test_locations_are_immutable(self):
		self.jfk.name = 'Renamed'
		with self.assertRaises(ValidationError):
			self.jfk.save()

	def test_out_of_range_latitude_rejected(self):
		with self.assertRaises(ValidationError):
			make_location('Nowhere', None, 95, 0)


class NearbyLocationsViewTests(TestCase):
	def setUp(self):
		cache.clear()
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username='viewer', password='pass1234')
		make_location('John F. Kennedy International', 'JFK', 40.64, -73.78)

	def test_nearby_endpoint_returns_distances(self):
		request = self.factory.get('/api/locations/nearby/', {'latitude': 40.65, 'longitude': -73.79})
		force_authenticate(request, user=self.user)
		response = NearbyLocationsView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertIn('distance_km', response.data['locations'][0])

	def test_nearby_endpoint_rejects_bad_latitude(self):
		request = self.factory.get('/api/locations/nearby/', {'latitude': 123, 'longitude': 0})
		force_authenticate(request, user=self.user)
		response = NearbyLocationsView.as_view()(request)

		self.assertEqual(response.status_code, 400)
