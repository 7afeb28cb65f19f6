"""
Shared fixtures: corpora written in the surface syntax.
"""

import pytest

from storyweave.ingestion.parser import parse_corpus


def corpus_of(*storylets):
    """Build a corpus from one string per storylet."""
    return parse_corpus("\n\n".join(storylets))


@pytest.fixture
def make_corpus():
    return corpus_of


@pytest.fixture
def trivial_corpus():
    return corpus_of("root ?x", "+x:a")


@pytest.fixture
def backtracking_corpus():
    """+x:a forbids y:no, but the only provider of y provides exactly no."""
    return corpus_of("root ?x ?y", "+x:a !y:no", "+x:b", "+y:no")


@pytest.fixture
def greeting_corpus():
    return corpus_of("root ?char_A", "Greetings from +char_@c I am @c")


def chain_corpus(length):
    """Every storylet both provides and asks for ?next: a dense cyclic provider graph."""
    return corpus_of("root ?next", *[f"+next e{i} ?next" for i in range(length)])
