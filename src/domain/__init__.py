"""Domain models and pure transformations for the on-chain ledger.

This package holds the in-memory (Pydantic) models for raw chain events and
ledger directives together with the logic that turns one into the other.
Nothing in here performs I/O, so every stage can be tested without network
stubs.
"""

__all__ = [
    "amounts",
    "balance_tracker",
    "chain",
    "directives",
    "postings",
    "rules",
]
