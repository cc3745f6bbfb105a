"""
Shared test fixtures for the legacysync library.

Usage:
    from tests.fixtures import (
        AlertsDomain,
        AlertsFilter,
        FakeAlertsSource,
        FakeAlertsTarget,
        make_alerts,
    )
"""

from tests.fixtures.domain import (
    Alert,
    AlertsDomain,
    AlertsFilter,
    FakeAlertsSource,
    FakeAlertsTarget,
    NewAlert,
    make_alerts,
)

__all__ = [
    "Alert",
    "AlertsDomain",
    "AlertsFilter",
    "FakeAlertsSource",
    "FakeAlertsTarget",
    "NewAlert",
    "make_alerts",
]
