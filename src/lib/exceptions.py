"""
Custom exception hierarchy for AMP Tracker.

Provides structured exception types for all subsystems:
- Configuration (missing templates, bad timezones, invalid settings)
- Input validation and missing records
- Day-record store failures and security failures

All exceptions inherit from AmpTrackerException, enabling
catch-all for tracker-specific errors while keeping the
ability to catch specific error types.
"""

from __future__ import annotations


class AmpTrackerException(Exception):
    """Base exception for all AMP Tracker errors."""


class ConfigurationError(AmpTrackerException):
    """Missing or invalid configuration: templates, timezones, env settings."""


class ValidationError(AmpTrackerException):
    """Malformed input: bad dates, wake times, empty or oversized identifiers."""


class NotFoundError(AmpTrackerException):
    """A required day record or checklist completion does not exist."""


class StoreError(AmpTrackerException):
    """Day-record or template store failures (connection, write conflicts)."""


class SecurityError(AmpTrackerException):
    """Authentication or authorization failures."""
