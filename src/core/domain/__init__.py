"""Domain models and error taxonomy.

Why:
- Pure data structures (pydantic v2 / dataclasses) live here.
- The domain knows nothing about HTTP, the CLI or the event loop.
"""
