# src/noderewards/__init__.py
"""
noderewards: deterministic vote-reward distribution for registered nodes.

Layout:
  - storage: key/value backends, staged (all-or-nothing) writes, ordered store
  - ledger: per-node RewardLedger + DistributionRegistry
  - registry: node-registry collaborator clients
  - runtime: host capabilities, executor, config, metrics
  - api: FastAPI surface
"""

__version__ = "0.3.0"
