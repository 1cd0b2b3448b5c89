"""
Registry and factory for exchange instances.
"""

import importlib
from typing import Any, Dict, List, Type, Union

from src.exchangehub.core.base import Exchange
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import ExchangeError

logger = get_logger(__name__)

# Built-in exchanges are referenced by import path and loaded on first use
DEFAULT_REGISTRY: Dict[str, str] = {
    "fake": "src.exchangehub.simulator.exchange:FakeExchange",
    "binance": "src.exchangehub.exchanges.binance:BinanceExchange",
}


class ExchangeManager:
    """Creates exchanges by name, optionally caching one instance per options set."""

    def __init__(self):
        self._registry: Dict[str, Union[str, Type[Exchange]]] = dict(DEFAULT_REGISTRY)
        self._instances: Dict[str, Exchange] = {}

    def make(self, name: str, singleton: bool = True, **options: Any) -> Exchange:
        """Return an exchange instance built with options as constructor arguments.

        With singleton=True, the same instance is returned for the same name
        and options until flush() is called.
        """
        name = name.lower().strip()
        key = f"{name}:{sorted(options.items(), key=lambda item: item[0])!r}"

        if singleton and key in self._instances:
            return self._instances[key]

        if name not in self._registry:
            raise ExchangeError(f"Exchange '{name}' not found. Available: {', '.join(self.available())}", name)

        cls = self._resolve(name)
        instance = cls(**options)
        logger.info(f"Created {cls.__name__} for '{name}'")

        if singleton:
            self._instances[key] = instance
        return instance

    def available(self) -> List[str]:
        return sorted(self._registry)

    def register(self, name: str, cls: Type[Exchange]) -> None:
        if not isinstance(cls, type) or not issubclass(cls, Exchange):
            raise ExchangeError(f"{cls!r} must subclass Exchange", name)
        self._registry[name.lower().strip()] = cls
        logger.debug(f"Registered exchange '{name}' -> {cls.__name__}")

    def flush(self) -> None:
        """Close and forget every cached instance."""
        for instance in self._instances.values():
            instance.close()
        self._instances.clear()

    def _resolve(self, name: str) -> Type[Exchange]:
        target = self._registry[name]
        if isinstance(target, str):
            module_path, class_name = target.split(":")
            target = getattr(importlib.import_module(module_path), class_name)
            self._registry[name] = target
        return target
