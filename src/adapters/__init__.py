"""Concrete implementations of the core interfaces (bridge, sinks, backends)."""
