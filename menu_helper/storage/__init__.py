"""
Persistent storage.

Responsibilities:
- SQLAlchemy engine and session scope for the relational store.
- One preference profile per device id (upsert).
- Dish cache rows keyed by normalized dish name, with read-time expiry.
- Shared rate-limit counters for multi-process deployments.
"""
