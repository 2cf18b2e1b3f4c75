"""
Dish enrichment layer.

Responsibilities:
- Normalize raw menu dish names into stable cache keys.
- Resolve a photo for each dish (persistent cache first, then image search).
- Generate short and detailed descriptions (LRU memo, then text LLM).
- Assemble extracted dishes into fully detailed dishes, concurrently.
"""
