from dispatch_core.services.analytics_service import AnalyticsAggregator
from dispatch_core.services.dispatch_coordinator import DispatchCoordinator
from dispatch_core.services.transition_engine import EntityRef, TransitionEngine

__all__ = ["AnalyticsAggregator", "DispatchCoordinator", "EntityRef", "TransitionEngine"]
