# ==============================================================================
# Infrastructure Layer
# ==============================================================================
"""
Concrete implementations of the base ports.

- repositories/: DataStore adapters (in-memory, PostgreSQL)
- channels/: ChangeChannel adapters (local, Valkey pub/sub)
- storage/: ContextStorage adapters (in-memory, Valkey)
- geolocation.py: HTTP geolocation resolver
"""
