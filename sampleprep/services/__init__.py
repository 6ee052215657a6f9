"""
Service layer: PrepService ABC and PrepRegistry.

Each calculator on the dashboard (sample weight, sample preparation,
ion chamber) is a PrepService registered with the PrepRegistry. The
registry provides lightweight dependency injection: services are looked
up by ID at runtime, and each service owns its own API endpoints, input
validation and result format.

Classes:
    PrepService  - Abstract base class for all calculator services
    PrepRegistry - Central lookup container for registered services

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import math
from abc import ABC, abstractmethod

# Dashboard sections, in display order: category id -> heading
CATEGORIES = (
    ("transmission", "Transmission pellets"),
    ("fluorescence", "Fluorescence and self-absorption"),
    ("detectors", "Detectors and ion chambers"),
)


class PrepService(ABC):
    """
    Abstract base class for a calculator service.

    Class Attributes
    ----------------
    id : str
        Unique service identifier (e.g. "sample-weight").
    name : str
        Human-readable display name.
    description : str
        One-liner for dashboard cards.
    category : str
        Grouping for the dashboard. One of:
        "transmission", "fluorescence", "detectors".
    status : str
        "live" or "coming_soon".
    route : str
        Frontend page route (e.g. "/sample-weight").
    """

    id = ""
    name = ""
    description = ""
    category = ""
    status = "coming_soon"
    route = ""

    @abstractmethod
    def validate(self, config):
        """
        Validate raw input and return a normalized config.

        Raises
        ------
        ValueError
            If the config is invalid. The message is shown to the user.
        """

    @abstractmethod
    def compute(self, config):
        """
        Run the service computation on a validated config.

        Returns
        -------
        dict
            JSON-serializable result.
        """

    def register_routes(self, blueprint):
        """
        Mount service-specific API endpoints onto a Flask blueprint.

        Live services override this to register their namespaced
        endpoints (e.g. /api/sample-weight/mix).
        """
        pass

    def metadata(self):
        """Service info for the registry and dashboard."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "route": self.route,
        }


class PrepRegistry:
    """
    Central lookup container for registered PrepService instances.
    """

    def __init__(self):
        self._services = {}

    def register(self, service):
        """
        Register a service instance.

        Raises
        ------
        ValueError
            If a service with the same id is already registered, or its
            category is not one of CATEGORIES.
        """
        if service.category not in dict(CATEGORIES):
            raise ValueError(
                "Service '{}' has unknown category '{}'".format(
                    service.id, service.category)
            )
        if service.id in self._services:
            raise ValueError(
                "Service '{}' is already registered".format(service.id)
            )
        self._services[service.id] = service

    def get(self, service_id):
        """Return the service with this id, or None."""
        return self._services.get(service_id)

    def list_all(self):
        """Metadata for all registered services, in registration order."""
        return [s.metadata() for s in self._services.values()]

    def by_category(self):
        """
        Services grouped into dashboard sections.

        Returns
        -------
        list of dict
            One entry per category in CATEGORIES order (empty sections
            skipped): id, label and the metadata of its services.
        """
        sections = []
        for category, label in CATEGORIES:
            services = [s.metadata() for s in self._services.values()
                        if s.category == category]
            if services:
                sections.append({"id": category, "label": label,
                                 "services": services})
        return sections

    def live(self):
        """All services with status 'live'."""
        return [s for s in self._services.values()
                if s.status == "live"]


def require_number(config, key, default=None, positive=False):
    """
    Read a finite float from a request payload.

    Raises
    ------
    ValueError
        If the key is missing without a default, not numeric, non-finite,
        or (with positive=True) not > 0.
    """
    raw = config.get(key, default)
    if raw is None:
        raise ValueError("{} is required".format(key))
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError("{} must be a number".format(key))
    if not math.isfinite(value):
        raise ValueError("{} must be finite".format(key))
    if positive and value <= 0:
        raise ValueError("{} must be > 0".format(key))
    return value


def json_safe(value):
    """Replace non-finite floats (anywhere in a result) with None."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value
