"""
Domain events emitted by the change graph engine.
"""

from .bus import DomainEvent, DomainEventType, EventBus, EventHandler

__all__ = ["DomainEvent", "DomainEventType", "EventBus", "EventHandler"]
