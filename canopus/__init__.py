"""Restart policies, TCP probes, adapters, an event bus and a JSON control daemon."""

__version__ = "0.1.0"

__all__ = ["__version__"]