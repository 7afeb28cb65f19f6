"""
Ingestion Layer

RESPONSIBILITY: Turn template source text into an immutable Corpus
ALLOWED INPUTS: Plain text, one storylet per blank-line separated paragraph
OUTPUTS: Corpus

WHAT THIS LAYER MUST NOT DO:
============================
- Resolve queries or bind variables
- Inspect facts or activation trees
- Persist or cache the source text
"""

from .parser import parse_corpus, parse_storylet, parse_token

__all__ = ["parse_corpus", "parse_storylet", "parse_token"]
