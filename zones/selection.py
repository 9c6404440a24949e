"""Selection set and bulk zone assignment."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.exceptions import PersistenceError, TractageError, ValidationError
from zones.constants import UNASSIGN_TARGET

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping

    ZoneWriter = Callable[[str, str | None], Awaitable[object]]

logger = logging.getLogger(__name__)


class SelectionController:
    """
    Owns one ephemeral selection set and the "assign to zone" operation.

    The set keeps insertion order so bulk writes happen in the order items
    were selected. ``on_change`` is called after every membership change.
    """

    def __init__(
        self,
        scope: str,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.scope = scope
        self._selected: dict[str, None] = {}
        self.target: str | None = None
        self._on_change = on_change

    @property
    def selected(self) -> list[str]:
        return list(self._selected)

    def __contains__(self, item: object) -> bool:
        return item in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def _replace(self, ids: Iterable[str]) -> None:
        self._selected = dict.fromkeys(ids)
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def toggle(self, item_id: str, *, multi_key: bool = False) -> list[str]:
        """
        Click semantics of the map and lists.

        Without the modifier key a click selects only ``item_id``, or clears
        the selection when ``item_id`` already is its only member. With the
        modifier key the membership of ``item_id`` flips.
        """
        if multi_key:
            if item_id in self._selected:
                del self._selected[item_id]
            else:
                self._selected[item_id] = None
            self._changed()
        elif list(self._selected) == [item_id]:
            self._replace([])
        else:
            self._replace([item_id])
        return self.selected

    def select_all(self, visible_ids: Iterable[str]) -> list[str]:
        self._replace(visible_ids)
        return self.selected

    def deselect_all(self) -> list[str]:
        self._replace([])
        return self.selected

    def select_many(self, ids: Iterable[str]) -> list[str]:
        """Add ``ids`` to the selection, keeping current members."""
        for item_id in ids:
            self._selected.setdefault(item_id, None)
        self._changed()
        return self.selected

    def deselect_many(self, ids: Iterable[str]) -> list[str]:
        for item_id in ids:
            self._selected.pop(item_id, None)
        self._changed()
        return self.selected

    def select_by_zone(
        self,
        zone_id: str | None,
        assignments: Mapping[str, str | None],
    ) -> list[str]:
        """Select exactly the items assigned to ``zone_id`` (None: unassigned)."""
        self._replace(
            item_id
            for item_id, assigned in assignments.items()
            if (assigned or None) == zone_id
        )
        return self.selected

    def choose_target(self, target: str | None) -> None:
        """Pick a zone id, ``"none"`` to unassign, or None to clear the choice."""
        self.target = target

    async def assign(self, writer: ZoneWriter) -> int:
        """
        Write the target zone onto every selected item, one at a time.

        Stops at the first failing write. Writes applied before it stay
        applied and are listed in the raised error's details.
        """
        if not self._selected:
            msg = "Select at least one item before assigning"
            raise ValidationError(msg)
        if self.target is None:
            msg = "Choose a target zone before assigning"
            raise ValidationError(msg)

        zone_id = None if self.target == UNASSIGN_TARGET else self.target
        applied: list[str] = []
        for item_id in self.selected:
            try:
                await writer(item_id, zone_id)
            except TractageError as exc:
                logger.warning(
                    "Assignment stopped at %s %s after %d writes: %s",
                    self.scope,
                    item_id,
                    len(applied),
                    exc.message,
                )
                msg = f"Assignment failed for {item_id}: {exc.message}"
                raise PersistenceError(
                    msg,
                    {"applied": applied, "failed": item_id},
                ) from exc
            applied.append(item_id)

        logger.info(
            "Assigned %d %s to %s",
            len(applied),
            self.scope,
            zone_id or "no zone",
        )
        self._selected = {}
        self.target = None
        self._changed()
        return len(applied)
