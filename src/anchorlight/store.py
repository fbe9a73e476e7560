"""Fragment persistence.

The engine only needs ``load`` and ``save``; how fragments are stored is up
to the implementation. ``MemoryFragmentStore`` keeps them in a dict and is
what the CLI and tests use. Import/export move fragment lists in and out as
a JSON array with camelCase keys.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from anchorlight.anchoring.models import Fragment

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class FragmentStore(Protocol):
    """Protocol for fragment stores."""

    async def load(self) -> list[Fragment]:
        """Return every stored fragment, oldest first."""
        ...

    async def save(self, fragment: Fragment) -> bool:
        """Store *fragment*, replacing any fragment with the same id.

        Returns:
            True when the fragment was stored.
        """
        ...


class MemoryFragmentStore:
    """In-memory implementation of FragmentStore."""

    def __init__(self, fragments: Iterable[Fragment] = ()) -> None:
        self._fragments: dict[str, Fragment] = {f.id: f for f in fragments}

    def __len__(self) -> int:
        return len(self._fragments)

    async def load(self) -> list[Fragment]:
        return list(self._fragments.values())

    async def save(self, fragment: Fragment) -> bool:
        self._fragments[fragment.id] = fragment
        return True

    async def delete(self, fragment_id: str) -> bool:
        return self._fragments.pop(fragment_id, None) is not None

    async def clear(self) -> None:
        self._fragments.clear()


@dataclass(frozen=True)
class ImportRecordResult:
    """Outcome of importing one record."""

    index: int
    success: bool
    fragment_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ImportReport:
    results: list[ImportRecordResult] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


def export_fragments(fragments: Iterable[Fragment]) -> str:
    """Serialise fragments as an indented JSON array."""
    records = [f.model_dump(mode="json", by_alias=True) for f in fragments]
    return json.dumps(records, indent=2, ensure_ascii=False)


async def import_fragments(store: FragmentStore, data: str | list[Any]) -> ImportReport:
    """Validate and save each record of a JSON array.

    A record that fails validation or is refused by the store is reported
    and skipped; the rest are still imported.

    Raises:
        ValueError: If *data* is not a JSON array.
    """
    records = json.loads(data) if isinstance(data, str) else data
    if not isinstance(records, list):
        msg = "Invalid data format: expected array"
        raise ValueError(msg)

    results: list[ImportRecordResult] = []
    for i, record in enumerate(records):
        try:
            fragment = Fragment.model_validate(record)
        except ValidationError as exc:
            logger.warning("Skipping invalid fragment record %d: %s", i, exc.errors()[0]["msg"])
            results.append(ImportRecordResult(i, False, error="ValidationError"))
            continue
        if await store.save(fragment):
            results.append(ImportRecordResult(i, True, fragment.id))
        else:
            results.append(ImportRecordResult(i, False, fragment.id, error="CollaboratorFailure"))

    report = ImportReport(results)
    logger.info("Imported %d fragment(s), %d failed", report.imported, report.failed)
    return report
