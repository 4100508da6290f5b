"""
Skills — reusable instruction packs loaded from a workspace.

Each skill lives in `<workspace>/skills/<name>/SKILL.md`: a YAML front matter
block (name, description, always, model_group) followed by markdown
instructions. Skills that fail to parse are skipped.
"""

import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class SkillDefinition(BaseModel):
    name: str
    description: str = ""
    instructions: str = ""
    always: bool = False
    model_group: Optional[Literal["fast", "slow"]] = None


def _split_front_matter(raw: str) -> tuple[dict, str]:
    """Split '---\\n<yaml>\\n---\\n<body>' into (metadata, body)."""
    if not raw.startswith("---"):
        return {}, raw
    parts = raw.split("---", 2)
    if len(parts) < 3:
        return {}, raw
    meta = yaml.safe_load(parts[1]) or {}
    if not isinstance(meta, dict):
        raise ValueError("front matter is not a mapping")
    return meta, parts[2]


def parse_skill(raw: str, default_name: str) -> SkillDefinition:
    meta, body = _split_front_matter(raw)
    return SkillDefinition(
        name=meta.get("name") or default_name,
        description=meta.get("description") or "",
        instructions=body.strip(),
        always=bool(meta.get("always", False)),
        model_group=meta.get("model_group", meta.get("modelGroup")),
    )


def load_skills(workspace_path: str, names: list[str] = None) -> list[SkillDefinition]:
    """Load every skill under the workspace, optionally limited to `names`."""
    skills_dir = Path(workspace_path) / "skills"
    if not skills_dir.is_dir():
        return []

    skills = []
    for entry in sorted(skills_dir.iterdir()):
        skill_file = entry / "SKILL.md"
        if not entry.is_dir() or not skill_file.is_file():
            continue
        try:
            skill = parse_skill(skill_file.read_text(encoding="utf-8"), entry.name)
        except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
            logger.debug("Skipping skill %s: %s", entry.name, e)
            continue
        if names and skill.name not in names and entry.name not in names:
            continue
        skills.append(skill)
    return skills
