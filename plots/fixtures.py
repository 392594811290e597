"""Explicit plot fixtures loaded from YAML files."""
from __future__ import annotations

from pathlib import Path
from typing import List

import yaml
from pydantic import ValidationError as PydanticValidationError

from .api import PlotCreateRequest
from .errors import ValidationError
from .models import PlotDraft


def load_fixture_file(path: Path) -> List[PlotDraft]:
    """Parse a ``plots:`` list from ``path`` using the creation schema."""
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    entries = raw.get("plots") if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        raise ValidationError(f"Fixture file {path} must define a list under the 'plots' key")

    drafts: List[PlotDraft] = []
    for index, entry in enumerate(entries):
        try:
            request = PlotCreateRequest.model_validate(entry)
        except PydanticValidationError as exc:
            details = [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
            raise ValidationError(f"Invalid plot fixture #{index + 1} in {path}", details) from exc
        drafts.append(request.to_draft())
    return drafts


__all__ = ["load_fixture_file"]
