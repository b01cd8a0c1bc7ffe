"""Application services."""

from .dataset_events import DatasetEventBus

__all__ = ["DatasetEventBus"]
