"""Domain models and value types.

Why:
- Pure, strict data structures (Pydantic v2) live here.
- The domain knows nothing about HTTP, the CLI or provider SDKs: only payout concepts.
"""
