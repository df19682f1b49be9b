"""Language detection by file name."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import PurePosixPath
from typing import Final

from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result

logger = logging.getLogger(__name__)

_BY_FILENAME: Final[dict[str, str]] = {
    "dockerfile": "Docker",
    "makefile": "Makefile",
    "cmakelists.txt": "CMake",
    "gemfile": "Ruby",
    "rakefile": "Ruby",
}

_BY_EXTENSION: Final[dict[str, str]] = {
    ".c": "C",
    ".h": "C",
    ".cc": "C++",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cs": "C#",
    ".css": "CSS",
    ".dart": "Dart",
    ".ex": "Elixir",
    ".exs": "Elixir",
    ".go": "Go",
    ".html": "HTML",
    ".java": "Java",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".json": "JSON",
    ".kt": "Kotlin",
    ".lua": "Lua",
    ".md": "Markdown",
    ".php": "PHP",
    ".py": "Python",
    ".pyi": "Python",
    ".rb": "Ruby",
    ".rs": "Rust",
    ".scala": "Scala",
    ".sh": "Bash",
    ".sql": "SQL",
    ".swift": "Swift",
    ".toml": "TOML",
    ".ts": "TypeScript",
    ".tsx": "TSX",
    ".vue": "Vue.js",
    ".xml": "XML",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".zig": "Zig",
}


def detect(entity: str) -> str | None:
    name = PurePosixPath(entity.replace("\\", "/")).name.lower()
    if name in _BY_FILENAME:
        return _BY_FILENAME[name]
    suffix = PurePosixPath(name).suffix
    return _BY_EXTENSION.get(suffix)


def with_detection() -> HandleOption:
    """Fill ``language`` unless already set; fall back to ``language_alternate``."""

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute language detection")
            out: list[Heartbeat] = []
            for heartbeat in heartbeats:
                if heartbeat.language is None:
                    detected = None
                    if heartbeat.entity_type is EntityType.FILE:
                        detected = detect(heartbeat.local_file or heartbeat.entity)
                    language = detected or heartbeat.language_alternate
                    if language is not None:
                        heartbeat = replace(heartbeat, language=language)
                out.append(heartbeat)
            return next_handle(out)

        return handle

    return option


__all__ = ["detect", "with_detection"]
