"""Skills loader for workspace skill discovery."""

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger


@dataclass
class SkillInfo:
    """Metadata for a discovered skill."""

    name: str
    path: Path
    description: str = ""
    always: bool = False
    requires: list[str] = field(default_factory=list)

    @property
    def skill_file(self) -> Path:
        return self.path / "SKILL.md"

    @property
    def missing_requirements(self) -> list[str]:
        """Required binaries that are not on PATH."""
        return [binary for binary in self.requires if shutil.which(binary) is None]

    @property
    def available(self) -> bool:
        return not self.missing_requirements

    def load_content(self) -> str:
        """Load the skill's SKILL.md without its frontmatter."""
        try:
            content = self.skill_file.read_text(encoding="utf-8")
        except OSError:
            return ""
        return _strip_frontmatter(content)


def _split_frontmatter(content: str) -> tuple[str, str]:
    if not content.startswith("---"):
        return "", content
    parts = content.split("---", 2)
    if len(parts) < 3:
        return "", content
    return parts[1], parts[2]


def _strip_frontmatter(content: str) -> str:
    return _split_frontmatter(content)[1].strip()


class SkillsLoader:
    """
    Discovers skills in ``<workspace>/skills`` and an optional built-in directory.

    A skill is a directory holding a SKILL.md file whose frontmatter may set
    ``description``, ``always: true`` and ``requires`` (comma-separated
    binaries). Workspace skills shadow built-in skills of the same name.
    Directories are rescanned on every call so new skills show up without a
    restart.
    """

    def __init__(self, workspace: Path, builtin_dir: Path | None = None) -> None:
        self.workspace = workspace
        self.workspace_skills = workspace / "skills"
        self.builtin_dir = builtin_dir

    def list_skills(self, only_available: bool = False) -> list[SkillInfo]:
        skills: dict[str, SkillInfo] = {}
        for directory in (self.workspace_skills, self.builtin_dir):
            if directory is None or not directory.is_dir():
                continue
            for child in sorted(directory.iterdir()):
                if child.name in skills or not (child / "SKILL.md").is_file():
                    continue
                skills[child.name] = self._parse_skill(child)
                logger.debug(f"Skill discovered: {child.name}")

        result = list(skills.values())
        if only_available:
            result = [skill for skill in result if skill.available]
        return result

    def _parse_skill(self, skill_dir: Path) -> SkillInfo:
        info = SkillInfo(name=skill_dir.name, path=skill_dir)
        try:
            frontmatter, _ = _split_frontmatter((skill_dir / "SKILL.md").read_text(encoding="utf-8"))
        except OSError as e:
            logger.warning(f"Failed to read skill {skill_dir.name}: {e}")
            return info

        for line in frontmatter.strip().splitlines():
            key, sep, value = line.partition(":")
            if not sep:
                continue
            key = key.strip()
            value = value.strip().strip("\"'")
            if key == "description":
                info.description = value
            elif key == "always":
                info.always = value.lower() == "true"
            elif key == "requires":
                info.requires = [item.strip() for item in value.split(",") if item.strip()]
        return info

    def get_skill(self, name: str) -> SkillInfo | None:
        return next((skill for skill in self.list_skills() if skill.name == name), None)

    def get_always_skills(self) -> list[SkillInfo]:
        """Available skills that should always be loaded in full."""
        return [skill for skill in self.list_skills(only_available=True) if skill.always]

    def load_skills_for_context(self, skills: list[SkillInfo]) -> str:
        """Load full content for a list of skills."""
        parts: list[str] = []
        for skill in skills:
            content = skill.load_content()
            if content:
                parts.append(f"### Skill: {skill.name}\n\n{content}")
        return "\n\n---\n\n".join(parts)

    def build_skills_summary(self) -> str:
        """Build a summary of skills that are not already loaded in full."""
        lines: list[str] = []
        for skill in self.list_skills():
            if skill.always and skill.available:
                continue
            line = f"- **{skill.name}**: {skill.description or 'No description'} (path: {skill.skill_file})"
            missing = skill.missing_requirements
            if missing:
                line += f" [unavailable, requires: {', '.join(missing)}]"
            lines.append(line)
        return "\n".join(lines)
