"""
Services package.

External collaborators: storage (finance_tracker.services.storage),
the Gemini client (finance_tracker.services.ai) and bearer token
verification (finance_tracker.services.auth).
"""
