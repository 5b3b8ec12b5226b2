"""Dagster Sensors - Event-Driven Job Triggers."""

from .completion_event_sensor import completion_event_sensor

__all__ = ["completion_event_sensor"]
