"""
Contracts Module

This module defines the immutable data model shared by the parser, the
core engines and the search scheduler. No layer may reach into another
layer's implementation; they exchange these types only.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. Expected failures are data (Verdict, Error), not exceptions
3. Edits produce new values; nothing is updated in place
4. Hash-based identity for caching and determinism checks
"""
