"""
Recommendation engine.

Responsibilities:
- Turn the device's stored preferences into an LLM prompt, with allergies
  as hard exclusions and disliked ingredients as soft avoids.
- Ask the text LLM for the top 3 dishes from the scanned menu.
- Validate the reply against the real candidate list so invented dishes
  never reach the user.
"""
