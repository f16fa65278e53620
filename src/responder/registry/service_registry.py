"""
Service Registry implementation.

The Service Registry is the "map" between alerting (PagerDuty service IDs)
and the remediation targets (GitHub repository, Slack channel, log source).
It is backed by a JSON file holding a list of service configurations.
"""

import json
import logging
from pathlib import Path

from responder.registry.models import ServiceConfig

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Registry of monitored services keyed by their configuration ID.

    Lookups by PagerDuty service ID only consider active configurations, and
    at most one active configuration may exist per PagerDuty service ID.

    Example registry file:
    [
        {
            "id": "svc-1",
            "name": "payment-service",
            "pagerduty_service_id": "PABC123",
            "repo_owner": "acme",
            "repo_name": "payment-api",
            "slack_channel_id": "C0123456"
        }
    ]
    """

    def __init__(self, registry_path: str | None = None) -> None:
        """Initialize the Service Registry.

        Args:
            registry_path: Path to the JSON file containing the registry.
                          If None, the registry lives in memory only.
        """
        self._registry: dict[str, ServiceConfig] = {}
        self._registry_path = registry_path

        if registry_path:
            self._load_from_file(registry_path)

    def _load_from_file(self, path: str) -> None:
        """Load registry data from a JSON file.

        Args:
            path: Path to the JSON file.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.warning(f"Service registry file not found: {path}")
            return

        try:
            with open(file_path) as f:
                data = json.load(f)

            for service_data in data:
                service = ServiceConfig(**service_data)
                self._registry[service.id] = service

            logger.info(f"Loaded {len(self._registry)} services from registry")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse service registry JSON: {e}")
        except Exception as e:
            logger.error(f"Failed to load service registry: {e}")

    def get_service(self, service_id: str) -> ServiceConfig | None:
        """Get a service configuration by its ID, active or not."""
        return self._registry.get(service_id)

    def get_by_pagerduty_id(self, pagerduty_service_id: str) -> ServiceConfig | None:
        """Get the active service configuration for a PagerDuty service.

        Args:
            pagerduty_service_id: The PagerDuty service ID from the alert.

        Returns:
            ServiceConfig if an active one is found, None otherwise.
        """
        for service in self._registry.values():
            if service.active and service.pagerduty_service_id == pagerduty_service_id:
                return service
        return None

    def get_by_name(self, name: str) -> ServiceConfig | None:
        """Get the active service configuration with the given name."""
        for service in self._registry.values():
            if service.active and service.name == name:
                return service
        return None

    def register_service(self, service: ServiceConfig) -> ServiceConfig:
        """Register a new service or update an existing one.

        An active configuration already bound to the same PagerDuty service ID
        is updated in place and keeps its ID.

        Args:
            service: The service configuration.

        Returns:
            The stored configuration.
        """
        existing = self.get_by_pagerduty_id(service.pagerduty_service_id)
        if existing and existing.id != service.id:
            service = service.model_copy(update={"id": existing.id})

        self._registry[service.id] = service
        logger.info(f"Registered service: {service.name} ({service.pagerduty_service_id})")
        self._persist()
        return service

    def deactivate_service(self, service_id: str) -> bool:
        """Deactivate a service. Records are kept for the audit trail.

        Args:
            service_id: The ID of the service configuration.

        Returns:
            True if the service was deactivated, False if it wasn't found.
        """
        service = self._registry.get(service_id)
        if service is None or not service.active:
            return False

        self._registry[service_id] = service.model_copy(update={"active": False})
        logger.info(f"Deactivated service: {service.name}")
        self._persist()
        return True

    def list_services(self) -> list[ServiceConfig]:
        """List all active service configurations."""
        return [s for s in self._registry.values() if s.active]

    def save_to_file(self, path: str | None = None) -> None:
        """Save the current registry to a JSON file.

        Args:
            path: Path to save to. If None, uses the original path.
        """
        save_path = path or self._registry_path
        if not save_path:
            raise ValueError("No path specified for saving registry")

        file_path = Path(save_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        data = [service.model_dump() for service in self._registry.values()]

        with open(file_path, "w") as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Saved registry to {save_path}")

    def _persist(self) -> None:
        if self._registry_path:
            self.save_to_file()

    def __len__(self) -> int:
        """Return the number of active services."""
        return len(self.list_services())

    def __contains__(self, service_id: str) -> bool:
        """Check if a service configuration ID is registered."""
        return service_id in self._registry
