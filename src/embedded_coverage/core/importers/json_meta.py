"""Free-form JSON metadata linked to a test run (e.g. ``.embedded/meta.json``)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..errors import ExternalImportError


@dataclass(frozen=True, slots=True)
class JsonMetaParser:
    def parse(self, artifact: bytes) -> dict[str, Any]:
        try:
            obj = json.loads(artifact)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ExternalImportError(f"invalid JSON metadata: {exc}") from exc
        if not isinstance(obj, dict):
            raise ExternalImportError("JSON metadata must be an object")
        return obj
