"""
Observability layer.

Responsibilities:
- Structured, leveled event emission shared by every component.
- Distinct rate-limit-hit, api-call and cache events.
- Aggregate recent events into usage analytics for the ops endpoints.
"""
