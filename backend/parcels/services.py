"""
Package listing operations: create, search, detail, update, cancel, quote
and the 30-day expiry sweep.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.exceptions import DomainValidationError, InvalidTransitionError, NotFoundError, NotParticipantError
from locations.services import get_location_index
from .models import Package

logger = logging.getLogger(__name__)

# Pricing constants (USD per kg)
REWARD_RATE_PER_KG = Decimal("15")
QUOTE_RATE_PER_KG = Decimal("12")
TRADITIONAL_MULTIPLIER = Decimal("2.5")
QUOTE_TRADITIONAL_MULTIPLIER = Decimal("2.8")
CENTS = Decimal("0.01")


class PackageNotFoundError(NotFoundError):
    """Raised when a package cannot be found."""
    error_code = "package_not_found"


@dataclass
class PackagePricing:
    estimated_reward: Decimal
    traditional_cost: Decimal
    savings: int


@dataclass
class PackageQuote:
    estimated_reward: Decimal
    traditional_cost: Decimal
    savings: int
    estimated_days: int


@dataclass
class PackageSearchResult:
    packages: List[Package] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


def _savings_percent(reward: Decimal, traditional: Decimal) -> int:
    if traditional <= 0:
        return 0
    return int(((traditional - reward) / traditional * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_pricing(weight, max_reward) -> PackagePricing:
    """Reward capped by max_reward, compared with a traditional courier."""
    weight = Decimal(str(weight))
    max_reward = Decimal(str(max_reward))

    reward = min(max_reward, weight * REWARD_RATE_PER_KG).quantize(CENTS)
    traditional = (reward * TRADITIONAL_MULTIPLIER).quantize(CENTS)
    return PackagePricing(reward, traditional, _savings_percent(reward, traditional))


def package_ttl() -> timedelta:
    return timedelta(days=settings.AIRBAR.get("PACKAGE_TTL_DAYS", 30))


def _package_queryset():
    return Package.objects.select_related('sender', 'origin', 'destination')


@transaction.atomic
def create_package(sender, origin_id, destination_id, weight, max_reward, **data) -> Package:
    """
    Create a PENDING package with computed pricing, expiring in 30 days.

    Raises:
        LocationNotFoundError: If either endpoint does not exist
        NotParticipantError: If the user's role cannot send
        DomainValidationError: If the pickup window is inverted
    """
    if not sender.can_send:
        raise NotParticipantError("Only senders can post packages")

    start = data.get('pickup_window_start')
    end = data.get('pickup_window_end')
    if start and end and end < start:
        raise DomainValidationError("Pickup window end must be after its start")

    origin, destination = get_location_index().find_exact(origin_id, destination_id)
    pricing = compute_pricing(weight, max_reward)

    package = Package.objects.create(
        sender=sender,
        origin=origin,
        destination=destination,
        weight=weight,
        max_reward=max_reward,
        estimated_reward=pricing.estimated_reward,
        traditional_cost=pricing.traditional_cost,
        savings=pricing.savings,
        status='PENDING',
        expires_at=timezone.now() + package_ttl(),
        views=0,
        **data,
    )
    logger.info("Package %s created by user %s (%skg)", package.id, sender.id, weight)
    return package


def search_packages(
    origin_id=None,
    destination_id=None,
    category: Optional[str] = None,
    max_weight=None,
    min_reward=None,
    urgent: Optional[bool] = None,
    status: str = 'PENDING',
    limit: int = 20,
    offset: int = 0,
) -> PackageSearchResult:
    """Unexpired packages matching the filters, urgent first then newest."""
    qs = _package_queryset().filter(status=status, expires_at__gt=timezone.now())

    if origin_id:
        qs = qs.filter(origin_id=origin_id)
    if destination_id:
        qs = qs.filter(destination_id=destination_id)
    if category:
        qs = qs.filter(category=category)
    if max_weight:
        qs = qs.filter(weight__lte=max_weight)
    if min_reward:
        qs = qs.filter(max_reward__gte=min_reward)
    if urgent is not None:
        qs = qs.filter(urgent=urgent)

    total = qs.count()
    page = list(qs.order_by('-urgent', '-created_at')[offset:offset + limit])
    return PackageSearchResult(packages=page, total=total, has_more=offset + limit < total)


def get_package(package_id, count_view: bool = False) -> Package:
    try:
        package = _package_queryset().get(id=package_id)
    except (Package.DoesNotExist, ValueError, TypeError):
        raise PackageNotFoundError(f"Package {package_id} not found")

    if count_view:
        Package.objects.filter(id=package.id).update(views=F('views') + 1)
        package.refresh_from_db(fields=['views'])
    return package


def get_user_packages(user, status: Optional[str] = None) -> List[Package]:
    qs = _package_queryset().filter(sender=user)
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by('-created_at'))


def _get_owned_package_for_update(user, package_id) -> Package:
    try:
        package = Package.objects.select_for_update().get(id=package_id)
    except (Package.DoesNotExist, ValueError, TypeError):
        raise PackageNotFoundError(f"Package {package_id} not found")
    if package.sender_id != user.id:
        raise NotParticipantError("Only the package's sender can change it")
    return package


@transaction.atomic
def update_package(user, package_id, **changes) -> Package:
    """Edit a pending package; weight or max_reward changes re-price it."""
    package = _get_owned_package_for_update(user, package_id)
    if package.status != 'PENDING':
        raise InvalidTransitionError(f"Cannot update a {package.status.lower()} package")

    for name, value in changes.items():
        setattr(package, name, value)

    update_fields = list(changes)
    if 'weight' in changes or 'max_reward' in changes:
        pricing = compute_pricing(package.weight, package.max_reward)
        package.estimated_reward = pricing.estimated_reward
        package.traditional_cost = pricing.traditional_cost
        package.savings = pricing.savings
        update_fields += ['estimated_reward', 'traditional_cost', 'savings']

    package.save(update_fields=update_fields + ['updated_at'])
    return package


@transaction.atomic
def cancel_package(user, package_id) -> Package:
    package = _get_owned_package_for_update(user, package_id)
    if package.status != 'PENDING':
        raise InvalidTransitionError(f"Cannot cancel - package is already {package.status.lower()}")

    package.status = 'CANCELLED'
    package.save(update_fields=['status', 'updated_at'])
    logger.info("Package %s cancelled by sender %s", package.id, user.id)
    return package


def estimate_delivery_days(origin_id, destination_id, now=None) -> int:
    """More active trips on the route in the next two weeks means faster delivery."""
    from trips.models import Trip

    now = now or timezone.now()
    active_trips = Trip.objects.filter(
        origin_id=origin_id,
        destination_id=destination_id,
        status='ACTIVE',
        departure_date__gte=now,
        departure_date__lte=now + timedelta(days=14),
    ).count()

    if active_trips > 10:
        return 2
    if active_trips > 5:
        return 3
    if active_trips > 2:
        return 4
    return 5


def get_package_quote(weight, origin_id, destination_id) -> PackageQuote:
    """Price estimate for a prospective package on a route."""
    origin, destination = get_location_index().find_exact(origin_id, destination_id)

    reward = (Decimal(str(weight)) * QUOTE_RATE_PER_KG).quantize(CENTS)
    traditional = (reward * QUOTE_TRADITIONAL_MULTIPLIER).quantize(CENTS)
    return PackageQuote(
        estimated_reward=reward,
        traditional_cost=traditional,
        savings=_savings_percent(reward, traditional),
        estimated_days=estimate_delivery_days(origin.id, destination.id),
    )


def expire_stale_packages(now=None) -> int:
    """Move PENDING packages past expires_at to EXPIRED. Returns the count."""
    now = now or timezone.now()
    expired = Package.objects.filter(status='PENDING', expires_at__lte=now).update(
        status='EXPIRED', updated_at=now
    )
    if expired:
        logger.info("Expired %d stale package(s)", expired)
    return expired
