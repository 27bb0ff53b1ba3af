#!/usr/bin/env python3
"""
Dependency Injection Container

Keeps construction of shared services (configuration, block detector,
request tracker, page clients) in one place so commands and tests can
swap them out.
"""

import logging
from typing import Any, Dict, Callable, TypeVar, Optional
from functools import wraps
import threading

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Container:
    """Simple dependency injection container with singleton and factory services."""

    def __init__(self):
        self._factories: Dict[str, Callable] = {}
        self._singletons: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def register_singleton(self, service_name: str, factory: Callable[[], T]) -> None:
        """Register a service created once on first use."""
        factory._is_singleton = True
        with self._lock:
            self._factories[service_name] = factory
            self._singletons.pop(service_name, None)

    def register_factory(self, service_name: str, factory: Callable[[], T]) -> None:
        """Register a service created anew on every get()."""
        with self._lock:
            self._factories[service_name] = factory

    def register_instance(self, service_name: str, instance: T) -> None:
        """Register an existing instance as singleton."""
        with self._lock:
            self._singletons[service_name] = instance

    def get(self, service_name: str) -> Any:
        """
        Get service instance by name.

        Raises:
            KeyError: If service is not registered
        """
        if service_name in self._singletons:
            return self._singletons[service_name]

        if service_name not in self._factories:
            raise KeyError(f"Service '{service_name}' not registered")

        with self._lock:
            factory = self._factories[service_name]
            if getattr(factory, '_is_singleton', False):
                if service_name not in self._singletons:
                    self._singletons[service_name] = factory()
                    logger.debug(f"Created singleton instance for '{service_name}'")
                return self._singletons[service_name]

            logger.debug(f"Created new instance for '{service_name}'")
            return factory()

    def has(self, service_name: str) -> bool:
        """Check if service is registered."""
        return service_name in self._factories or service_name in self._singletons

    def clear(self) -> None:
        """Clear all registered services and instances."""
        with self._lock:
            self._factories.clear()
            self._singletons.clear()


def singleton(factory_func: Callable[[], T]) -> Callable[[], T]:
    """Decorator to mark a factory function as singleton."""
    @wraps(factory_func)
    def wrapper():
        return factory_func()

    wrapper._is_singleton = True
    return wrapper


# Global container instance
_container: Optional[Container] = None
_container_lock = threading.Lock()


def get_container() -> Container:
    """Get global container instance (thread-safe singleton)."""
    global _container
    if _container is None:
        with _container_lock:
            if _container is None:
                _container = Container()
                _setup_default_services(_container)
    return _container


def reset_container() -> None:
    """Reset global container (useful for testing)."""
    global _container
    with _container_lock:
        if _container:
            _container.clear()
        _container = None


def _setup_default_services(container: Container) -> None:
    """Set up default service registrations with configuration injection."""

    @singleton
    def create_config():
        from core.config import get_config
        return get_config()

    @singleton
    def create_block_detector():
        from core.harvesting import BlockDetector
        return BlockDetector()

    @singleton
    def create_request_tracker():
        from core.request_tracker import RequestTracker
        config = container.get('config')
        return RequestTracker(
            log_dir=config.storage.log_dir,
            tz_name=config.storage.tracker_timezone,
        )

    def create_parse_api_client():
        from core.harvesting import ParseApiClient
        config = container.get('config')
        return ParseApiClient(
            endpoint=config.client.parse_api_url,
            timeout=config.client.request_timeout,
            block_detector=container.get('block_detector'),
        )

    def create_direct_page_client():
        from core.harvesting import DirectPageClient, ProxyRotator
        config = container.get('config')
        return DirectPageClient(
            timeout=config.client.request_timeout,
            block_detector=container.get('block_detector'),
            proxy_rotator=ProxyRotator(config.client.proxies),
        )

    container.register_singleton('config', create_config)
    container.register_singleton('block_detector', create_block_detector)
    container.register_singleton('request_tracker', create_request_tracker)
    container.register_factory('parse_api_client', create_parse_api_client)
    container.register_factory('direct_page_client', create_direct_page_client)

    logger.debug("Default services registered in container")
