"""
Surface Syntax Parser
=====================

Paragraphs separated by blank lines are storylets. Inside a paragraph,
whitespace-separated tokens are classified by their leading sigil:

    +key[:value]   exported Assign (value defaults to "yes")
    =key[:value]   private Assign  (value defaults to "yes")
    ?key           Query
    $key           Read
    &key[:value]   Match   (value defaults to "*")
    !key[:value]   Exclude (value defaults to "*")
    anything else  Literal (including the *high / *low priority markers)
"""

from __future__ import annotations
from typing import List, Tuple
import re

from ..contracts.base import CorpusParseError
from ..contracts.corpus import (
    Assign, Query, Read, Literal, Match, Exclude, Fragment,
    Storylet, Corpus, DEFAULT_VALUE, WILDCARD,
)


PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _split_relation(body: str, default_value: str) -> Tuple[str, str]:
    if ":" in body:
        key, value = body.split(":", 1)
        return key, value
    return body, default_value


def parse_token(token: str, paragraph: int = 0, position: int = 0) -> Fragment:
    """Classify a single token."""
    sigil, body = token[:1], token[1:]

    if sigil in ("+", "=", "&", "!"):
        default = DEFAULT_VALUE if sigil in ("+", "=") else WILDCARD
        key, value = _split_relation(body, default)
        if not key:
            raise CorpusParseError("empty key after sigil", paragraph, position, token)
        if sigil == "+":
            return Assign(key=key, value=value, exported=True)
        if sigil == "=":
            return Assign(key=key, value=value, exported=False)
        if sigil == "&":
            return Match(key=key, value=value)
        return Exclude(key=key, value=value)

    if sigil in ("?", "$"):
        if not body:
            raise CorpusParseError("empty key after sigil", paragraph, position, token)
        return Query(key=body) if sigil == "?" else Read(key=body)

    return Literal(text=token)


def parse_storylet(text: str, paragraph: int = 0) -> Storylet:
    source = text.strip()
    fragments: List[Fragment] = [
        parse_token(token, paragraph, position)
        for position, token in enumerate(source.split())
    ]
    return Storylet(fragments=tuple(fragments), source=source)


def parse_corpus(text: str) -> Corpus:
    """Parse template source; empty paragraphs are dropped."""
    paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(text)]
    return Corpus(storylets=tuple(
        parse_storylet(p, index)
        for index, p in enumerate(p for p in paragraphs if p)
    ))
