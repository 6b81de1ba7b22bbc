"""File exporter for sync scripts.

``choose_save_path`` stands in for a save dialog: it returns a preset path
(``--output``) or prompts on the terminal.  End-of-input at the prompt
counts as a cancellation.
"""

import asyncio
import logging
from pathlib import Path

from structure_sync.errors import ExportError

logger = logging.getLogger(__name__)


def apply_extension(path: Path, extension_filter: str) -> Path:
    """Append the filter's extension when the path lacks it.

    Example:
        >>> apply_extension(Path("out/sync"), "*.sql")
        PosixPath('out/sync.sql')
    """
    suffix = extension_filter.lstrip("*")
    if not suffix.startswith(".") or suffix == ".":
        return path
    if path.suffix.lower() == suffix.lower():
        return path
    return path.with_name(path.name + suffix)


class LocalFileExporter:
    """``FileExporter`` writing to the local filesystem.

    Args:
        path: Preset save location.  When given, no prompt is shown.
        interactive: Prompt for a path when no preset is given.  When
            ``False`` and no preset exists, every export is cancelled.
    """

    def __init__(self, path: Path | str | None = None, interactive: bool = True) -> None:
        self._path = Path(path) if path is not None else None
        self._interactive = interactive

    def _prompt(self, default_name: str) -> str | None:
        try:
            answer = input(f"Save sync script as [{default_name}]: ").strip()
        except EOFError:
            return None
        return answer or default_name

    async def choose_save_path(self, default_name: str, extension_filter: str) -> Path | None:
        if self._path is not None:
            return apply_extension(self._path, extension_filter)
        if not self._interactive:
            return None

        try:
            answer = await asyncio.to_thread(self._prompt, default_name)
        except OSError as e:
            raise ExportError(f"Save prompt failed: {e}") from e
        if answer is None:
            return None
        return apply_extension(Path(answer).expanduser(), extension_filter)

    async def write_file(self, path: Path, content: str) -> None:
        """Write the script, creating parent directories as needed."""
        logger.info("Saving SQL file to: %s", path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.error("Failed to write SQL file: %s", e)
            raise ExportError(f"Failed to write {path}: {e}") from e
