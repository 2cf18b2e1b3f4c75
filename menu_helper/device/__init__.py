"""
Anonymous device identity.

Responsibilities:
- Resolve the caller's device id from query, cookie, or header.
- Mint and refresh the long-lived device id cookie.
"""
