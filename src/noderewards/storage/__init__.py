# src/noderewards/storage/__init__.py
"""
Contract storage.

Everything the ledger persists goes through a KVStore. A call never writes to
the durable backend directly: it writes to a StagedKV overlay which the
executor either commits in one batch or drops.
"""
