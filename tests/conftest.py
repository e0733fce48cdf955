"""Shared fixtures for the brand monitoring tests."""

from typing import Any, Callable

import httpx
import pytest

from brand_monitor.config import Settings
from brand_monitor.detectors import build_detectors
from brand_monitor.rate_limit import RateLimiter
from brand_monitor.registry import RegistryClient
from brand_monitor.scheduler import MonitoringScheduler
from brand_monitor.store import InMemoryStore

from helpers import NOW, FakeRegistry


@pytest.fixture
def settings() -> Settings:
    return Settings(rate_limit_delay_ms=0)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def make_registry(settings: Settings) -> Callable[..., RegistryClient]:
    """Build a RegistryClient whose HTTP traffic goes to ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any) -> RegistryClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RegistryClient(
            kwargs.pop("settings", settings),
            http_client=http_client,
            rate_limiter=kwargs.pop("rate_limiter", RateLimiter(0)),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_scheduler(settings: Settings, store: InMemoryStore, fake_registry: FakeRegistry):
    """Scheduler over the in-memory store, fake registry and a fixed clock."""

    def _make(detectors=None, clock=lambda: NOW, **overrides: Any) -> MonitoringScheduler:
        scheduler_settings = settings.model_copy(update=overrides) if overrides else settings
        return MonitoringScheduler(
            store=store,
            detectors=detectors or build_detectors(fake_registry, scheduler_settings),
            settings=scheduler_settings,
            clock=clock,
        )

    return _make
