# models/segmentation_engine.py
"""
Process-wide cache of ONNX Runtime inference sessions.

• Builds a session lazily, the first time its model path is requested.
• Never evicts: models are few and sessions are read-only once built.
• Cache hits take no lock; only first construction per path is guarded.
"""
from __future__ import annotations
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import onnxruntime as ort
from onnxruntime.capi.onnxruntime_pybind11_state import Fail, InvalidArgument, InvalidProtobuf, NoSuchFile

from .. import settings
from ..exceptions import ModelLoadFailed

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], Any]

# onnxruntime's load errors derive from Exception directly
_LOAD_ERRORS = (Fail, InvalidArgument, InvalidProtobuf, NoSuchFile, RuntimeError, OSError, ValueError)


def create_onnx_session(model_path: str, providers: Optional[List[str]] = None) -> ort.InferenceSession:
    """Heavy ONNX load; runs once per model path per Python process."""
    available = ort.get_available_providers()
    wanted = [p for p in (providers or settings.ONNX_PROVIDERS) if p in available]
    if not wanted:
        wanted = ["CPUExecutionProvider"]
    logger.info(f"Loading ONNX model {model_path} with providers {wanted}")
    try:
        return ort.InferenceSession(model_path, providers=wanted)
    except _LOAD_ERRORS as err:
        logger.error(f"Could not load ONNX model {model_path}: {err}")
        raise ModelLoadFailed(model_path, str(err)) from err


class InferenceSessionCache:
    """
    Keyed by model path.  Safe to share between threads: sessions are only
    used for ``run`` after construction.
    """

    def __init__(self, factory: SessionFactory | None = None) -> None:
        self._factory = factory or create_onnx_session
        self._sessions: Dict[str, Any] = {}
        self._init_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # --------------------------------------------------
    def get(self, model_path: str) -> Any:
        session = self._sessions.get(model_path)
        if session is not None:
            logger.debug(f"Reusing loaded session for {model_path}")
            return session

        with self._init_lock(model_path):
            # another thread may have finished construction while we waited
            session = self._sessions.get(model_path)
            if session is None:
                logger.info(f"Model {model_path} not loaded yet. Loading...")
                session = self._factory(model_path)
                self._sessions[model_path] = session
        return session

    def __contains__(self, model_path: str) -> bool:
        return model_path in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # --------------------------------------------------
    def _init_lock(self, model_path: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._init_locks.get(model_path)
            if lock is None:
                lock = threading.Lock()
                self._init_locks[model_path] = lock
            return lock


_default_cache: InferenceSessionCache | None = None
_default_cache_guard = threading.Lock()


def default_session_cache() -> InferenceSessionCache:
    """The process-wide cache instance."""
    global _default_cache
    if _default_cache is None:
        with _default_cache_guard:
            if _default_cache is None:
                _default_cache = InferenceSessionCache()
    return _default_cache
