"""Service Registry for mapping PagerDuty services to repositories."""

from responder.registry.models import PagerDutyAlert, ServiceConfig
from responder.registry.service_registry import ServiceRegistry

__all__ = ["PagerDutyAlert", "ServiceConfig", "ServiceRegistry"]
