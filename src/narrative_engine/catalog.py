"""
Template catalog loading.

Content ships as JSON under ``data/drama/*.json`` and
``data/interviews/*.json``. Each file holds a list under ``templates``.
Entries that fail validation are logged and skipped so one bad template
never takes the rest of the catalog down with it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from .errors import CatalogError
from .state.schema import DramaEventTemplate, InterviewTemplate

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent / "data"

M = TypeVar("M", bound=BaseModel)


@dataclass
class TemplateCatalog:
    drama: list[DramaEventTemplate] = field(default_factory=list)
    interviews: list[InterviewTemplate] = field(default_factory=list)

    @classmethod
    def load(cls, data_dir: Path | str | None = None) -> "TemplateCatalog":
        """
        Load every template under ``data_dir`` (the packaged data by default).

        Raises:
            CatalogError: the directory itself does not exist
        """
        data_dir = Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
        if not data_dir.is_dir():
            raise CatalogError(f"template directory not found: {data_dir}")

        catalog = cls(
            drama=load_templates(data_dir / "drama", DramaEventTemplate),
            interviews=load_templates(data_dir / "interviews", InterviewTemplate),
        )
        logger.info(
            "Loaded %d drama and %d interview templates from %s",
            len(catalog.drama), len(catalog.interviews), data_dir,
        )
        return catalog

    def drama_by_id(self, template_id: str) -> DramaEventTemplate | None:
        return next((t for t in self.drama if t.id == template_id), None)

    def interview_by_id(self, template_id: str) -> InterviewTemplate | None:
        return next((t for t in self.interviews if t.id == template_id), None)


def load_templates(directory: Path, model: type[M]) -> list[M]:
    """Load and validate all templates in a directory. Duplicate ids keep the first."""
    templates: list[M] = []
    seen: set[str] = set()

    if not directory.is_dir():
        logger.warning("No template directory at %s", directory)
        return templates

    for json_file in sorted(directory.glob("*.json")):
        try:
            with open(json_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Skipping unreadable template file %s: %s", json_file.name, e)
            continue

        entries = data.get("templates", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            logger.warning("Skipping %s: expected a list of templates", json_file.name)
            continue
        for index, raw in enumerate(entries):
            try:
                template = model.model_validate(raw)
            except ValidationError as e:
                ref = raw.get("id", index) if isinstance(raw, dict) else index
                logger.warning("Skipping template %s in %s: %s", ref, json_file.name, e)
                continue
            if template.id in seen:
                logger.warning("Duplicate template id %s in %s; keeping the first", template.id, json_file.name)
                continue
            seen.add(template.id)
            templates.append(template)

    return templates
