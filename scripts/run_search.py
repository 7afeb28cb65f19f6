"""
Run a storylet search from the command line.

Drives the search frame by frame, the way an interactive host would,
and prints the completed story.

Usage:
    python scripts/run_search.py corpus.txt --seed 7
"""
import argparse
import json
import logging
import os
import sys
from datetime import timedelta

# Ensure project root in path
sys.path.append(os.getcwd())

from storyweave.engine import StoryEngine, EngineConfig
from storyweave.search.driver import FrameDriver, TreeRecorder
from storyweave.render import render_text, render_outline
from storyweave.domain.serialization import StoryJSONEncoder
from storyweave.observability import TraceEventType


def main():
    parser = argparse.ArgumentParser(description="Storylet search")
    parser.add_argument('corpus', help='Template source file (paragraph per storylet)')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--frames', type=int, default=None, help='Stop after this many frames')
    parser.add_argument('--frame-budget-ms', type=float, default=None, help='Budget per frame')
    parser.add_argument('--max-depth', type=int, default=None, help='Depth limit for cyclic corpora')
    parser.add_argument('--outline', action='store_true', help='Print the activation tree')
    parser.add_argument('--trace', action='store_true', help='Print every backtrack')
    parser.add_argument('--json', action='store_true', help='Print the result as JSON')
    parser.add_argument('--verbose', '-v', action='store_true')

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with open(args.corpus, encoding="utf-8") as f:
        text = f.read()

    config = EngineConfig.from_env()
    if args.frame_budget_ms is not None:
        config.search.frame_budget_ms = args.frame_budget_ms
    if args.max_depth is not None:
        config.search.max_depth = args.max_depth

    engine = StoryEngine.from_text(text, config)
    print(f"[*] Loaded {len(engine.corpus)} storylets")
    for query in engine.topology.unanswerable_queries():
        print(f"[!] Query ?{query.key} in storylet {query.template} has no provider")

    recorder = TreeRecorder(engine.corpus)
    search = engine.begin_search(on_publish=recorder, seed=args.seed)
    driver = FrameDriver(search, timedelta(milliseconds=config.search.frame_budget_ms))
    outcome = driver.drive(max_frames=args.frames)

    step = outcome.last_step
    metrics = search.observer.metrics
    print(f"[*] {step.status.value} after {outcome.frames} frames, {metrics.units} units, "
          f"{metrics.backtracks} backtracks")

    if args.trace:
        trace = search.observer.trace
        for entry in trace.get_entries(TraceEventType.CHILD_FAILED):
            print(f"    #{entry.sequence} depth={entry.depth} storylet={entry.template} "
                  f"query={entry.get('index')} downstream={entry.get('downstream', 'False')}")
        print(f"[*] Trace: {trace.entry_count} entries kept, {trace.dropped} dropped")

    tree = step.result or recorder.latest_tree
    if tree is None:
        return 1
    if args.json:
        document = {
            "status": step.status,
            "tree": tree,
            "facts": engine.facts(tree).facts,
            "metrics": metrics.snapshot(),
        }
        print(json.dumps(document, cls=StoryJSONEncoder, indent=2))
        return 0 if step.result is not None else 1
    if args.outline:
        print(render_outline(engine.corpus, tree))
    print(render_text(engine.corpus, tree))
    return 0 if step.result is not None else 1


if __name__ == "__main__":
    sys.exit(main())
