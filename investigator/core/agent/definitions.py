"""Agent definitions and model resolution.

An agent definition is a markdown file ``<agents_dir>/<name>.md`` with YAML
frontmatter (``name``, ``description``, ``model``, ``skills``) followed by the
prompt body. Built-in definitions cover every agent the pipeline dispatches.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from investigator.config.settings import LLMSettings
from investigator.core.agent.builtin_agents import BUILTIN_AGENT_DEFINITIONS
from investigator.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n?---\r?\n?(.*)\Z", re.DOTALL)


class AgentDefinition(BaseModel):
    name: str
    description: str = ""
    model: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    body: str


def parse_agent_definition(raw: str, fallback_name: str) -> AgentDefinition:
    """Split frontmatter from body. A file without frontmatter is all body."""
    match = FRONTMATTER_RE.match(raw)
    if not match:
        return AgentDefinition(name=fallback_name, body=raw.strip())

    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Invalid frontmatter in agent definition {fallback_name}: {e}") from e
    if not isinstance(meta, dict):
        raise ConfigurationException(f"Frontmatter of agent definition {fallback_name} must be a mapping")

    skills = meta.get("skills") or []
    if isinstance(skills, str):
        skills = [s.strip() for s in skills.split(",") if s.strip()]

    return AgentDefinition(
        name=str(meta.get("name") or fallback_name),
        description=str(meta.get("description") or ""),
        model=str(meta["model"]) if meta.get("model") else None,
        skills=[str(s) for s in skills],
        body=match.group(2).strip(),
    )


class AgentCatalog:
    """Resolves agent names to definitions and builds their system prompts.

    Files in ``agents_dir`` take precedence over built-in definitions.
    Skill references are injected from ``<skills_dir>/<skill>/SKILL.md`` when
    a skills directory is configured.
    """

    def __init__(self, agents_dir: Optional[Path] = None, skills_dir: Optional[Path] = None,
                 use_builtins: bool = True):
        self.agents_dir = Path(agents_dir) if agents_dir else None
        self.skills_dir = Path(skills_dir) if skills_dir else None
        self.use_builtins = use_builtins
        self._cache: Dict[str, AgentDefinition] = {}

    def get(self, agent_name: str) -> AgentDefinition:
        if agent_name in self._cache:
            return self._cache[agent_name]

        raw = None
        if self.agents_dir is not None:
            path = self.agents_dir / f"{agent_name}.md"
            if path.is_file():
                raw = path.read_text(encoding="utf-8")
        if raw is None and self.use_builtins:
            raw = BUILTIN_AGENT_DEFINITIONS.get(agent_name)
        if raw is None:
            raise ConfigurationException(
                f'No definition found for agent "{agent_name}"',
                details={"agents_dir": str(self.agents_dir) if self.agents_dir else None},
            )

        definition = parse_agent_definition(raw, agent_name)
        self._cache[agent_name] = definition
        return definition

    def _skill_content(self, definition: AgentDefinition) -> str:
        if self.skills_dir is None or not definition.skills:
            return ""
        parts = []
        for skill in definition.skills:
            path = self.skills_dir / skill / "SKILL.md"
            if path.is_file():
                parts.append(f"## Skill Reference: {skill}\n\n{path.read_text(encoding='utf-8')}")
            else:
                logger.warning(f"Skill file missing for agent {definition.name}: {path}")
                parts.append(f"## Skill Reference: {skill}\n\n_Skill file not found._")
        return "\n\n---\n\n".join(parts)

    def build_system_prompt(self, agent_name: str, investigation_context: Optional[str] = None) -> str:
        definition = self.get(agent_name)
        sections = [definition.body]

        skills = self._skill_content(definition)
        if skills:
            sections.append("\n\n# Skill References\n\n" + skills)
        if investigation_context:
            sections.append("\n\n# Investigation Context\n\n" + investigation_context)

        return "".join(sections)


class ModelRegistry:
    """Maps agent names and model aliases to concrete model identifiers.

    Resolution order: per-agent override from settings, then the alias table,
    then the value itself as a full model id. With no value at all the
    default alias applies.
    """

    def __init__(self, settings: LLMSettings):
        self.aliases = dict(settings.model_aliases)
        self.overrides = dict(settings.agent_model_overrides)
        self.default_alias = settings.default_model_alias

    def resolve(self, agent_name: str, model: Optional[str] = None) -> str:
        override = self.overrides.get(agent_name)
        if override:
            return self.aliases.get(override, override)

        value = model or self.default_alias
        return self.aliases.get(value, value)
