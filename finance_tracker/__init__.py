"""
Finance Tracker - Source Package

Transaction intake service for a personal finance tracker: validated
transaction records, AI receipt scanning and an AI spending assistant.

DESIGN PRINCIPLES:
1. Nothing is persisted without passing schema AND reference checks
2. Report every problem at once, never just the first
3. Identity comes from the credential, never from the request body
4. Internal error detail stays in the server log
5. Storage and AI backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
