"""
Storyweave API Server
=====================

Stateless HTTP surface over the engine. Every request carries the
template source; trees travel as nested JSON objects.

Endpoints:
- GET  /health
- POST /api/v1/corpus/parse  -> storylets, provider metrics
- POST /api/v1/facts         -> fact table, verdict, conflicts
- POST /api/v1/search        -> completed tree (or failure), facts, text
- POST /api/v1/render        -> text for a tree
- POST /api/v1/candidates    -> candidates for one query

Usage:
    uvicorn storyweave.api.server:app --reload
"""
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..contracts.base import ActivationPathError, CorpusParseError
from ..contracts.activation import Activation
from ..domain.serialization import (
    activation_to_dict, activation_from_dict, aggregation_to_dict, corpus_to_list, error_to_dict,
)
from ..core.topology import CYCLE_SAMPLE_LIMIT
from ..engine import StoryEngine, EngineConfig

logger = logging.getLogger(__name__)

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

engine_config: EngineConfig = EngineConfig()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Read configuration on startup."""
    global engine_config
    engine_config = EngineConfig.from_env()
    logger.info(
        "storyweave API ready (seed=%s, max_units=%d, max_depth=%s)",
        engine_config.search.random_seed, engine_config.max_units, engine_config.search.max_depth,
    )
    yield
    _engine_for.cache_clear()


app = FastAPI(
    title="Storyweave API",
    version="0.1.0",
    description="Storylet binding and backtracking completion",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@lru_cache(maxsize=32)
def _engine_for(text: str) -> StoryEngine:
    return StoryEngine.from_text(text, engine_config)


def _engine(text: str) -> StoryEngine:
    try:
        return _engine_for(text)
    except ValueError as e:
        # CorpusParseError is a ValueError, as is an empty corpus
        raise HTTPException(status_code=422, detail=str(e))


def _tree(engine: StoryEngine, data: Optional[Dict[str, Any]]) -> Activation:
    if data is None:
        return engine.new_root()
    try:
        tree = activation_from_dict(data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    errors = engine.tree_errors(tree)
    if errors:
        raise HTTPException(status_code=422, detail=[error_to_dict(e) for e in errors])
    return tree


@app.exception_handler(ActivationPathError)
async def path_error_handler(request: Request, exc: ActivationPathError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": error_to_dict(exc.error)})


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CorpusRequest(BaseModel):
    text: str


class TreeRequest(BaseModel):
    text: str
    tree: Optional[Dict[str, Any]] = None


class SearchRequest(BaseModel):
    text: str
    tree: Optional[Dict[str, Any]] = None
    seed: Optional[int] = None
    max_units: Optional[int] = Field(default=None, gt=0)


class CandidatesRequest(BaseModel):
    text: str
    tree: Optional[Dict[str, Any]] = None
    path: List[int] = Field(default_factory=list)
    query_index: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    return {"status": "online"}


@app.post("/api/v1/corpus/parse")
async def parse(request: CorpusRequest):
    engine = _engine(request.text)
    metrics = engine.topology.compute_metrics()
    cycles = engine.topology.provider_cycles(limit=CYCLE_SAMPLE_LIMIT + 1)
    return {
        "storylets": corpus_to_list(engine.corpus),
        "topology": {
            "edges": metrics.edge_count,
            "acyclic": metrics.is_acyclic,
            "cycles": cycles[:CYCLE_SAMPLE_LIMIT],
            "cycles_truncated": len(cycles) > CYCLE_SAMPLE_LIMIT,
            "unanswerable": [
                {"template": q.template, "query_index": q.query_index, "key": q.key}
                for q in engine.topology.unanswerable_queries()
            ],
        },
    }


@app.post("/api/v1/facts")
async def facts(request: TreeRequest):
    engine = _engine(request.text)
    tree = _tree(engine, request.tree)
    return aggregation_to_dict(engine.facts(tree))


@app.post("/api/v1/search")
def search(request: SearchRequest):
    engine = _engine(request.text)
    tree = _tree(engine, request.tree)
    max_units = min(request.max_units or engine_config.max_units, engine_config.max_units)

    step = engine.complete(tree, seed=request.seed, max_units=max_units)
    body: Dict[str, Any] = {"status": step.status.value, "units": step.units, "tree": None}
    if step.result is not None:
        body["tree"] = activation_to_dict(step.result)
        body["facts"] = aggregation_to_dict(engine.facts(step.result))
        body["text"] = engine.render(step.result)
    return body


@app.post("/api/v1/render")
async def render(request: TreeRequest):
    engine = _engine(request.text)
    tree = _tree(engine, request.tree)
    return {"text": engine.render(tree)}


@app.post("/api/v1/candidates")
async def candidates(request: CandidatesRequest):
    engine = _engine(request.text)
    tree = _tree(engine, request.tree)
    found = engine.candidates(tree, tuple(request.path), request.query_index)
    return {
        "candidates": [
            {
                "template": c.template,
                "locals": c.bindings.as_dict(),
                "source": engine.corpus[c.template].source,
            }
            for c in found
        ]
    }
