import json
from enum import Enum
from typing import Any, Dict, List

from ..contracts.base import Error
from ..contracts.corpus import Bindings, Corpus, Storylet
from ..contracts.activation import Activation
from ..core.facts import AggregationResult, FactTable


class StoryJSONEncoder(json.JSONEncoder):
    """
    JSON Encoder for storyweave values.

    RULES:
    1. Enums MUST use their .value.
    2. Bindings become plain objects.
    3. Activations become nested {template, locals, children} objects,
       children keyed by the query position as a string.
    4. Sets -> Lists (sorted for determinism).
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Bindings):
            return obj.as_dict()
        if isinstance(obj, Activation):
            return activation_to_dict(obj)
        if isinstance(obj, FactTable):
            return facts_to_dict(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(list(obj))
        if hasattr(obj, "__dataclass_fields__"):
            from dataclasses import asdict
            return asdict(obj)

        return super().default(obj)


def activation_to_dict(node: Activation) -> Dict[str, Any]:
    return {
        "template": node.template,
        "locals": node.locals.as_dict(),
        "children": {str(i): activation_to_dict(c) for i, c in node.children},
    }


def activation_from_dict(data: Dict[str, Any]) -> Activation:
    """Inverse of activation_to_dict. Raises ValueError on malformed input."""
    try:
        template = int(data["template"])
        local_map = {str(k): str(v) for k, v in (data.get("locals") or {}).items()}
        children = tuple(sorted(
            (int(i), activation_from_dict(c))
            for i, c in (data.get("children") or {}).items()
        ))
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"malformed activation: {e}") from e
    return Activation(template=template, locals=Bindings.of(local_map), children=children)


def facts_to_dict(facts: FactTable) -> Dict[str, Dict[str, Any]]:
    return {
        key: {"value": entry.value, "exported": entry.exported}
        for key, entry in facts.entries
    }


def error_to_dict(error: Error) -> Dict[str, Any]:
    return {
        "code": error.code.name,
        "message": error.message,
        "context": dict(error.context),
    }


def aggregation_to_dict(result: AggregationResult) -> Dict[str, Any]:
    return {
        "verdict": result.verdict.value,
        "facts": facts_to_dict(result.facts),
        "conflicts": [error_to_dict(e) for e in result.conflicts],
    }


def storylet_to_dict(index: int, storylet: Storylet) -> Dict[str, Any]:
    return {
        "index": index,
        "source": storylet.source,
        "fragments": [
            {"kind": f.kind.value, **{k: v for k, v in vars(f).items()}}
            for f in storylet.fragments
        ],
        "priority": storylet.priority(),
    }


def corpus_to_list(corpus: Corpus) -> List[Dict[str, Any]]:
    return [storylet_to_dict(i, s) for i, s in enumerate(corpus)]
