"""
Frame Driver Tests
"""

from datetime import timedelta
import random

from storyweave.contracts.base import SearchStatus
from storyweave.contracts.activation import Activation
from storyweave.search import begin_search, FrameDriver, TreeRecorder


def driver_for(corpus, units_per_frame=1, seed=0, on_publish=None):
    search = begin_search(corpus, Activation.root(), on_publish=on_publish, rng=random.Random(seed))
    return search, FrameDriver(search, frame_budget=timedelta(seconds=10), units_per_frame=units_per_frame)


def test_drives_to_completion_over_many_frames(backtracking_corpus):
    search, driver = driver_for(backtracking_corpus)
    outcome = driver.drive()
    assert outcome.finished
    assert outcome.last_step.status is SearchStatus.SATISFIED
    assert outcome.frames == driver.frames == search.observer.metrics.slices
    assert outcome.frames == search.observer.metrics.units


def test_single_frame_budget_finishes_small_search(trivial_corpus):
    _, driver = driver_for(trivial_corpus, units_per_frame=None)
    outcome = driver.drive()
    assert outcome.finished
    assert outcome.frames == 1


def test_max_frames_leaves_search_running(backtracking_corpus):
    search, driver = driver_for(backtracking_corpus)
    outcome = driver.drive(max_frames=1)
    assert not outcome.finished
    assert outcome.frames == 1
    assert search.status is SearchStatus.RUNNING

    # Driving again picks up where it stopped
    assert driver.drive().finished


def test_on_frame_false_cancels(backtracking_corpus):
    recorder = TreeRecorder(backtracking_corpus)
    search, driver = driver_for(backtracking_corpus, on_publish=recorder)
    outcome = driver.drive(on_frame=lambda step: False)
    assert outcome.frames == 1
    assert outcome.last_step.status is SearchStatus.CANCELLED
    assert search.status is SearchStatus.CANCELLED
    assert recorder.latest_tree == Activation.root()


def test_on_frame_sees_final_step(trivial_corpus):
    seen = []
    _, driver = driver_for(trivial_corpus)
    driver.drive(on_frame=lambda step: seen.append(step) is None)
    assert seen
    assert seen[-1].done
    assert all(not step.done for step in seen[:-1])
