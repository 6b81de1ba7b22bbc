"""Schema comparator reading results from an external diff tool.

Schema introspection and diff computation happen outside this package; the
comparator tool writes its ``DiffResult`` as JSON and this adapter loads it:

    {
      "items": [
        {"id": "1", "diff_type": "TableAdded", "table_name": "users",
         "sql": "CREATE TABLE users (id INT PRIMARY KEY);"}
      ],
      "source_tables": 5,
      "target_tables": 3
    }

The file is re-read on every ``compare`` call, so an execute-then-refresh
cycle picks up a regenerated diff.
"""

import logging
from pathlib import Path

from pydantic import ValidationError

from structure_sync.adapters.base import ConnectionDirectory
from structure_sync.errors import InvalidDiffResultError
from structure_sync.schema.models import DiffResult

logger = logging.getLogger(__name__)


class JsonDiffComparator:
    """``SchemaComparator`` that loads a precomputed diff file.

    Args:
        directory: Used to verify that both connection ids exist.
        diff_file: Path to the JSON diff result.
    """

    def __init__(self, directory: ConnectionDirectory, diff_file: Path | str) -> None:
        self._directory = directory
        self._diff_file = Path(diff_file)

    async def compare(
        self,
        source_id: str,
        target_id: str,
        source_database: str | None = None,
        target_database: str | None = None,
    ) -> DiffResult:
        """Load the diff for ``source_id`` -> ``target_id``.

        Raises:
            ConnectionNotFoundError: If either connection id is unknown.
            FileNotFoundError: If the diff file does not exist.
            InvalidDiffResultError: If the file is not a valid diff result.
        """
        await self._directory.require_connection(source_id)
        await self._directory.require_connection(target_id)

        logger.info(
            "Loading diff %s -> %s from %s",
            source_database or source_id,
            target_database or target_id,
            self._diff_file,
        )
        if not self._diff_file.exists():
            raise FileNotFoundError(f"Diff file not found: {self._diff_file}")

        try:
            return DiffResult.model_validate_json(self._diff_file.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise InvalidDiffResultError(
                f"Invalid diff result in {self._diff_file.name}: {e}"
            ) from e
