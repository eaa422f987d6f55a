# templates.py -- Per-probe NetFlow v9 template store
# Template IDs are only unique within one exporter, so every probe owns its
# own store. Entries never expire: re-announcements overwrite in place.

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..models import FieldSpec

log = logging.getLogger(__name__)


class TemplateStore:
    """Mapping of template ID to its ordered field layout.

    Accessed only from the owning probe's worker thread, so there is no locking.
    """

    def __init__(self, probe: str = "") -> None:
        self.probe = probe
        self._templates: dict[int, tuple[FieldSpec, ...]] = {}

    def upsert(self, template_id: int, fields: Iterable[FieldSpec]) -> None:
        """Store a layout, replacing any previous layout for the same ID (no merge)."""
        layout = tuple(fields)
        previous = self._templates.get(template_id)
        self._templates[template_id] = layout
        if previous is None:
            log.debug(
                "Probe %s: new template %d (%d fields)", self.probe, template_id, len(layout)
            )
        elif previous != layout:
            log.info(
                "Probe %s: template %d redefined (%d -> %d fields)",
                self.probe,
                template_id,
                len(previous),
                len(layout),
            )

    def lookup(self, template_id: int) -> tuple[FieldSpec, ...] | None:
        return self._templates.get(template_id)

    def ids(self) -> list[int]:
        return sorted(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)
