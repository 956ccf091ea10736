"""Tests for the process-wide inference session cache."""

import threading
import time

from imagevec.models.segmentation_engine import InferenceSessionCache, default_session_cache


def test_sessions_are_created_lazily_and_reused():
    created = []

    def factory(path):
        created.append(path)
        return object()

    cache = InferenceSessionCache(factory=factory)
    assert created == []
    assert "a.onnx" not in cache

    first = cache.get("a.onnx")
    second = cache.get("a.onnx")

    assert first is second
    assert created == ["a.onnx"]
    assert "a.onnx" in cache
    assert len(cache) == 1


def test_each_model_path_gets_its_own_session():
    cache = InferenceSessionCache(factory=lambda path: {"path": path})

    assert cache.get("a.onnx")["path"] == "a.onnx"
    assert cache.get("b.onnx")["path"] == "b.onnx"
    assert len(cache) == 2


def test_concurrent_first_use_builds_once():
    calls = []
    lock = threading.Lock()

    def slow_factory(path):
        with lock:
            calls.append(path)
        time.sleep(0.05)
        return object()

    cache = InferenceSessionCache(factory=slow_factory)
    results = []

    def worker():
        results.append(cache.get("shared.onnx"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_default_cache_is_a_singleton():
    assert default_session_cache() is default_session_cache()
