"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Wrap the Groq chat and vision endpoints behind small protocols.
- Keep every call bounded by a client-side timeout.
"""
