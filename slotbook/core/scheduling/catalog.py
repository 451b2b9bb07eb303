"""
Catalog.

Static business configuration: providers, service menu, the bundle
pseudo-service and the fixed daily slot list. Loaded once at startup
and never mutated.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from slotbook.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provider:
    """A service professional with their own calendar."""

    name: str
    calendar_id: str
    admin_contact: str

    @classmethod
    def from_dict(cls, data: dict) -> "Provider":
        """Create from config dict."""
        return cls(
            name=data["name"],
            calendar_id=data.get("calendar_id", ""),
            admin_contact=data.get("admin_contact", ""),
        )


@dataclass(frozen=True)
class Service:
    """A bookable service.

    Exclusive services are the primary item of an appointment; at most one
    may be selected. Everything else is an additive add-on.
    """

    id: str
    name: str
    price: float
    menu_code: str
    exclusive: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Service":
        """Create from config dict."""
        return cls(
            id=data["id"],
            name=data["name"],
            price=float(data["price"]),
            menu_code=str(data["menu_code"]),
            exclusive=bool(data.get("exclusive", False)),
        )


DEFAULT_PROVIDERS = [
    Provider("Alexander", "provider1@example.com", "111111111111@s.whatsapp.net"),
    Provider("Richard", "provider2@example.com", "222222222222@s.whatsapp.net"),
    Provider("Murilo", "provider3@example.com", "333333333333@s.whatsapp.net"),
]

DEFAULT_SERVICES = [
    Service("social_cut", "Classic Cut", 30, "1", exclusive=True),
    Service("fade_razor", "Razor Fade", 35, "2", exclusive=True),
    Service("fade_zero", "Skin Fade", 35, "3", exclusive=True),
    Service("social_scissor", "Scissor-Only Cut", 35, "4", exclusive=True),
    Service("machine_cut", "Clipper-Only Cut", 25, "5", exclusive=True),
    Service("beard_fade", "Faded Beard", 25, "6"),
    Service("beard_normal", "Regular Beard", 20, "7"),
    Service("color", "Coloring", 20, "8"),
    Service("brush", "Blow Dry", 15, "9"),
    Service("eyebrow", "Eyebrows", 15, "10"),
    Service("hairline", "Neckline", 10, "11"),
]

DEFAULT_BUNDLE = Service(
    "bundle", "Bundle: Classic Cut + Regular Beard", 45, "P", exclusive=True
)

BUNDLE_ALIASES = {"P", "BUNDLE"}

DEFAULT_TIME_SLOTS = [
    "08:00", "09:00", "10:00", "11:00", "12:00",
    "13:00", "14:00", "15:00", "16:00",
    "17:00", "18:00", "19:00",
]


@dataclass
class Catalog:
    """Providers, services and the fixed daily slot list."""

    providers: list[Provider] = field(default_factory=lambda: list(DEFAULT_PROVIDERS))
    services: list[Service] = field(default_factory=lambda: list(DEFAULT_SERVICES))
    time_slots: list[str] = field(default_factory=lambda: list(DEFAULT_TIME_SLOTS))
    bundle: Optional[Service] = DEFAULT_BUNDLE

    @classmethod
    def from_dict(cls, data: dict) -> "Catalog":
        """Create from config dict; missing sections fall back to defaults."""
        catalog = cls()
        if "providers" in data:
            catalog.providers = [Provider.from_dict(p) for p in data["providers"]]
        if "services" in data:
            catalog.services = [Service.from_dict(s) for s in data["services"]]
        if "time_slots" in data:
            catalog.time_slots = sorted(data["time_slots"])
        if "bundle" in data:
            bundle = data["bundle"]
            catalog.bundle = (
                Service.from_dict({**bundle, "exclusive": True}) if bundle else None
            )
        return catalog

    @classmethod
    def from_file(cls, path: str) -> "Catalog":
        """Load catalog from a JSON file."""
        with Path(path).open(encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))

    @property
    def exclusive_services(self) -> list[Service]:
        return [s for s in self.services if s.exclusive]

    @property
    def addon_services(self) -> list[Service]:
        return [s for s in self.services if not s.exclusive]

    def find_provider(self, choice: str) -> Optional[Provider]:
        """Resolve a 1-based menu index or a case-insensitive name."""
        choice = choice.strip()
        if choice.isascii() and choice.isdigit():
            index = int(choice)
            if 1 <= index <= len(self.providers):
                return self.providers[index - 1]
            return None

        lowered = choice.lower()
        for provider in self.providers:
            if provider.name.lower() == lowered:
                return provider
        return None

    def provider_by_name(self, name: str) -> Optional[Provider]:
        """Exact (case-insensitive) provider name lookup."""
        lowered = name.strip().lower()
        for provider in self.providers:
            if provider.name.lower() == lowered:
                return provider
        return None

    def service_by_code(self, code: str) -> Optional[Service]:
        """Resolve a menu code, including the bundle aliases."""
        normalized = code.strip().upper()
        if self.bundle and (
            normalized in BUNDLE_ALIASES or normalized == self.bundle.menu_code.upper()
        ):
            return self.bundle
        for service in self.services:
            if service.menu_code.upper() == normalized:
                return service
        return None


# Singleton
_catalog: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Get singleton Catalog (from CATALOG_PATH when set)."""
    global _catalog
    if _catalog is None:
        settings = get_settings()
        if settings.catalog_path:
            _catalog = Catalog.from_file(settings.catalog_path)
            logger.info(f"Catalog loaded from {settings.catalog_path}")
        else:
            _catalog = Catalog()
    return _catalog
