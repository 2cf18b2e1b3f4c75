"""
Dish photo search.

Responsibilities:
- Query the Google Custom Search JSON API for food photos.
- Report provider quota exhaustion separately from other failures.
"""
