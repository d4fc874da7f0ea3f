"""
botfarm - scheduled content-curation bots

Independent batch processes ("bots") that claim deferred work from a shared
PostgreSQL queue, call an external oracle, and write results back to the
content store under single-writer-per-field-group ownership.

Layers:
- config: settings and connection configuration
- models: storage-agnostic dataclasses
- repositories: asyncpg persistence (content, queue, state, runs, ledger)
- services: oracle client, similarity engine, quality scoring
- workers: the bot runner and the concrete bot behaviors
"""

__version__ = "0.4.0"
