# repositories/config_repository.py
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .. import settings
from ..exceptions import ConfigNotFound
from ..models.configs import PreprocessConfig, RembgConfig, VectorizeConfig

logger = logging.getLogger(__name__)


class ConfigRepository:
    """
    Read-only lookup of named recipes.

    Recipes live in one JSON document::

        {"preprocess": {"<code>": {...}},
         "vectorize":  {"<code>": {...}},
         "rembg":      {"<code>": {...}}}
    """

    def __init__(self, path: Union[str, Path, None] = None, data: Optional[Mapping[str, Any]] = None) -> None:
        if data is not None:
            self._data: Dict[str, Any] = dict(data)
            self.path = None
        else:
            self.path = Path(path or settings.RECIPES_PATH)
            self._data = self._read(self.path)

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        if not path.exists():
            logger.warning(f"Recipe file not found: {path}; every lookup will miss")
            return {}
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)

    # ---------- private helpers ----------
    def _find(self, kind: str, code: Optional[str]) -> Mapping[str, Any]:
        section = self._data.get(kind) or {}
        record = section.get(code) if code else None
        if record is None:
            raise ConfigNotFound(kind, code)
        return record

    # ---------- public API ----------
    def get_preprocess_config(self, code: Optional[str]) -> PreprocessConfig:
        return PreprocessConfig.from_dict(self._find("preprocess", code))

    def get_vectorize_config(self, code: Optional[str]) -> VectorizeConfig:
        return VectorizeConfig.from_dict(self._find("vectorize", code))

    def get_rembg_config(self, code: Optional[str]) -> RembgConfig:
        return RembgConfig.from_dict(self._find("rembg", code))

    def codes(self, kind: str) -> list:
        return sorted((self._data.get(kind) or {}).keys())
