"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP layer.

Modules:
    - matching: Trip/package candidate search and the match result cache
    - match_management: Match request and match lifecycle operations
    - disputes: Dispute workflow and SLA tracking

Import from the subpackages directly; they load Django models lazily and
importing them all here would create cycles with the app service modules.
"""
