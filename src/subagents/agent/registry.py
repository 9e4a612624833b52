"""Discover and load agent definition files from a directory."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

#: File suffixes recognised as agent definitions.
AGENT_SUFFIXES = (".md", ".txt")

_MAX_NAME_LENGTH = 255

#: Path separators, shell metacharacters and whitespace.
_FORBIDDEN_NAME_RE = re.compile(r"[<>:\"/\\|?*;`$()&\s]")

_HEADING_RE = re.compile(r"^#+\s*")

_DEFAULT_DESCRIPTION = "Agent definition"


class AgentNameError(ValueError):
    """Raised for agent names that are empty, too long, or unsafe."""


class AgentsDirectoryError(Exception):
    """Raised when the agents directory cannot be scanned."""


@dataclass(frozen=True, slots=True)
class AgentDefinition:
    """An agent loaded from a markdown or text file."""

    name: str
    description: str
    content: str
    file_path: Path
    last_modified: datetime


def validate_agent_name(name: str) -> None:
    """Reject names that could escape the agents directory or reach a shell."""
    if not name or not name.strip():
        msg = "Invalid agent name: empty agent name not allowed"
        raise AgentNameError(msg)
    if len(name) > _MAX_NAME_LENGTH:
        msg = "Invalid agent name: too long agent name"
        raise AgentNameError(msg)
    if _FORBIDDEN_NAME_RE.search(name) or any(
        ord(ch) <= 31 or ord(ch) == 127 for ch in name
    ):
        msg = "Invalid agent name: forbidden characters detected"
        raise AgentNameError(msg)
    if ".." in name:
        msg = "Invalid agent name: path traversal attempt detected"
        raise AgentNameError(msg)


def extract_description(content: str) -> str:
    """First markdown heading, else the first non-empty line."""
    lines = [line for line in content.split("\n") if line.strip()]
    for line in lines:
        if line.startswith("#"):
            return _HEADING_RE.sub("", line).strip()
    if lines:
        return lines[0].strip()
    return _DEFAULT_DESCRIPTION


class AgentRegistry:
    """Reads agent definitions from *agents_dir* on every lookup.

    Files are re-scanned each time so edits are picked up without a
    restart.  The agent name is the file name without its suffix.
    """

    def __init__(self, agents_dir: Path) -> None:
        self._agents_dir = Path(agents_dir)

    @property
    def agents_dir(self) -> Path:
        return self._agents_dir

    def list_agents(self) -> list[AgentDefinition]:
        """Return every loadable definition, sorted by name."""
        return sorted(self._load_all().values(), key=lambda a: a.name)

    def get_agent(self, name: str) -> AgentDefinition | None:
        """Look up *name*, or return ``None`` if no such file exists.

        Raises:
            AgentNameError: If *name* is not a safe agent name.
            AgentsDirectoryError: If the directory cannot be read.
        """
        validate_agent_name(name)
        return self._load_all().get(name)

    def _load_all(self) -> dict[str, AgentDefinition]:
        directory = self._agents_dir.resolve()
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            msg = f"Failed to load agents from directory: {self._agents_dir}"
            raise AgentsDirectoryError(msg) from exc

        agents: dict[str, AgentDefinition] = {}
        for path in entries:
            if path.suffix not in AGENT_SUFFIXES or not path.is_file():
                continue
            agent = _load_file(path)
            if agent is not None:
                agents[agent.name] = agent

        logger.debug("Loaded %d agent definitions from %s", len(agents), directory)
        return agents


def _load_file(path: Path) -> AgentDefinition | None:
    try:
        content = path.read_text(encoding="utf-8")
        mtime = path.stat().st_mtime
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to load agent definition %s: %s", path, exc)
        return None

    return AgentDefinition(
        name=path.stem,
        description=extract_description(content),
        content=content,
        file_path=path,
        last_modified=datetime.fromtimestamp(mtime, tz=UTC),
    )
