"""Scan provisioning: register a target URL with the scan provider."""

from __future__ import annotations

import uuid
from typing import Any
from urllib.parse import urlsplit

from scangate.core.errors import DomainNotRegistered
from scangate.core.logging import get_logger
from scangate.gateways.provider import ProviderGateway
from scangate.models.scan_profile import ScanProfile, ScanStatus

logger = get_logger(__name__)


def target_host(target_url: str) -> str:
    """Lower-cased host of *target_url*; bare hostnames are accepted too."""
    parts = urlsplit(target_url if "://" in target_url else f"https://{target_url}")
    host = (parts.hostname or "").rstrip(".")
    if not host:
        raise ValueError(f"Cannot determine host of {target_url!r}")
    return host


def match_domain(host: str, domains: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the registered domain covering *host*.

    A domain covers a host when it equals it or is a dot-bounded suffix of it
    (``example.com`` covers ``app.example.com`` but not ``badexample.com``).
    The longest covering domain wins.
    """
    host = host.lower()
    best: dict[str, Any] | None = None
    for domain in domains:
        name = (domain.get("name") or "").lower().rstrip(".")
        if not name:
            continue
        if host == name or host.endswith(f".{name}"):
            if best is None or len(name) > len(best["name"].rstrip(".")):
                best = domain
    return best


class Provisioner:
    def __init__(self, provider: ProviderGateway) -> None:
        self._provider = provider

    async def provision(self, target_url: str, app_name: str | None = None) -> ScanProfile:
        """Create a provider-side profile for *target_url*.

        Returns an unsaved :class:`ScanProfile` in ``profile_created`` with its
        provider token set; persisting it is up to the caller.

        Raises:
            DomainNotRegistered: no account domain covers the URL's host.
            ProviderError: any provider call failed.
        """
        host = target_host(target_url)
        domains = await self._provider.list_domains()

        domain = match_domain(host, domains)
        if domain is None:
            raise DomainNotRegistered(host, target_url)

        created = await self._provider.create_profile(domain["token"], host)
        logger.info(
            "Scan profile created",
            app=app_name,
            endpoint=host,
            domain=domain["name"],
            name=created.get("name"),
        )
        return ScanProfile(
            id=uuid.uuid4(),
            provider_token=created["token"],
            name=created.get("name") or host,
            endpoint=created.get("endpoint") or host,
            target_app=app_name,
            target_url=target_url,
            status=ScanStatus.PROFILE_CREATED.value,
            deleted=False,
        )

    async def start(self, profile: ScanProfile) -> str:
        """Start the scan and return the provider's first reported state.

        Both provider calls raise :class:`ProviderError`; ``operation`` is
        ``start_scan`` or ``scan_status`` depending on which one failed.
        """
        await self._provider.start_scan(profile.provider_token)
        state = await self._provider.get_scan_status(profile.provider_token)
        logger.info("Scan started", profile_id=str(profile.id), state=state)
        return state
