"""
FastAPI dependencies wiring routes to the core services.
"""

from dispatch_core.services.analytics_service import AnalyticsAggregator
from dispatch_core.services.dispatch_coordinator import DispatchCoordinator
from dispatch_core.store.factory import get_entity_store


def get_coordinator() -> DispatchCoordinator:
    return DispatchCoordinator(get_entity_store())


def get_aggregator() -> AnalyticsAggregator:
    return AnalyticsAggregator(get_entity_store())
