"""
Menu photo reading.

Responsibilities:
- Validate the uploaded image type from its magic bytes.
- Extract dish names with a vision LLM, translated to the target language.
- Fall back to OCR line heuristics when the vision LLM is unavailable.
"""
