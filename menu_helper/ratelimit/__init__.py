"""
Rate limiting for third-party API spend.

Responsibilities:
- Per-API minute-window and calendar-day quotas.
- Atomic check-and-increment over a shared counter store.
- Fail open when the counter store is unreachable.
- Escalating alerts as daily usage approaches the limit.
"""
