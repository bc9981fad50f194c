"""Domain models and entities.

Why:
- Pure, strict data structures live here (Pydantic v2 and enums).
- The domain knows nothing about the CLI or storage backends: only the
  concepts of caching, notifications and asset preloading.
"""
