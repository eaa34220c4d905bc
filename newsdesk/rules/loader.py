import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from newsdesk.rules.models import Rules

# Rules may also ship as a markdown page with one fenced yaml block
_FENCED_YAML = re.compile(r"^```ya?ml\s*$\n(.*?)^```", re.MULTILINE | re.DOTALL)


def _parse(content: str) -> Any:
    match = _FENCED_YAML.search(content)
    try:
        return yaml.safe_load(match.group(1) if match else content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e


def load_rules(path: Path) -> Rules:
    """
    Load site, engagement, moderation, analytics and realtime settings.

    Missing sections and keys fall back to the model defaults.
    Raises FileNotFoundError if the file is missing and ValueError if the
    YAML or any value is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    data = _parse(path.read_text(encoding="utf-8"))
    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Rules file {path} must contain a mapping of sections")

    try:
        return Rules.model_validate(data or {})
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e
