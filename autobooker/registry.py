"""
Component registry: named factories for pluggable collaborators.

Configuration refers to event sources, intent classifiers and notifiers by
name (``CALENDAR_PROVIDERS=memory``, ``INTENT_CLASSIFIER=rules`` ...). The
registry maps those names to factories so wiring code never imports a
concrete implementation directly.
"""

import logging
from typing import Any, Callable

from autobooker.errors import ConfigurationError

logger = logging.getLogger(__name__)

EVENT_SOURCE = "event_source"
INTENT_CLASSIFIER = "intent_classifier"
NOTIFIER = "notifier"

_REGISTRY: dict[str, dict[str, Callable[..., Any]]] = {
    EVENT_SOURCE: {},
    INTENT_CLASSIFIER: {},
    NOTIFIER: {},
}


def register(kind: str, name: str, factory: Callable[..., Any]) -> None:
    """Register a factory under ``kind``/``name``, replacing any previous one."""
    if kind not in _REGISTRY:
        raise ConfigurationError(f"Unknown component kind '{kind}'. Available: {list(_REGISTRY)}")
    _REGISTRY[kind][name] = factory
    logger.debug("Registered %s: %s", kind, name)


def create(kind: str, name: str, **kwargs: Any) -> Any:
    """Build a component by registered name.

    Raises:
        ConfigurationError: If nothing is registered under that name.
    """
    factories = _REGISTRY.get(kind, {})
    if name not in factories:
        raise ConfigurationError(
            f"{kind} '{name}' not registered. Available: {sorted(factories)}"
        )
    return factories[name](**kwargs)


def get_registered(kind: str) -> list[str]:
    """Return the names registered for a component kind."""
    return sorted(_REGISTRY.get(kind, {}))


def _auto_register() -> None:
    """Register the built-in components. Called once at import time."""
    from autobooker.availability.providers import InMemoryEventSource, SeededDemoEventSource
    from autobooker.conversation.intent_classifier import (
        LLMIntentClassifier,
        RuleBasedIntentClassifier,
    )
    from autobooker.tools.notifications import RecordingNotifier

    register(EVENT_SOURCE, "memory", InMemoryEventSource)
    register(EVENT_SOURCE, "demo", SeededDemoEventSource)
    register(INTENT_CLASSIFIER, "rules", RuleBasedIntentClassifier)
    register(INTENT_CLASSIFIER, "llm", LLMIntentClassifier)
    register(NOTIFIER, "recording", RecordingNotifier)


_auto_register()
