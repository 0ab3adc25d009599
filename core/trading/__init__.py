"""
Shared position core: lifecycle state machine, models, and record stores.

This package hosts storage-agnostic logic used by the position sync and
performance aggregation services.
"""
