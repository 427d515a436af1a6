"""
Autosave Controller

Tracks whether the workflow has unsaved changes and persists it after a
quiet period. States:

    CLEAN  --change-->  DIRTY  --timer / explicit save-->  SAVING
    SAVING --success--> CLEAN (or DIRTY if edited during the save)
    SAVING --failure--> DIRTY (timer re-armed; the debounce is the retry interval)

Only one debounce task exists at a time and no save starts while another
is in flight.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from studio.workflow.config import WorkflowSettings, workflow_settings
from studio.workflow.notifications import LogNotifier, Notifier

logger = structlog.get_logger(__name__)

SAVE_SUCCEEDED_MESSAGE = "Workflow saved successfully"
SAVE_FAILED_MESSAGE = "Failed to save workflow"


class SaveState(str, Enum):
    """Persistence state of the workflow."""

    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"


class AutosaveController:
    """Debounced autosave state machine."""

    def __init__(
        self,
        persist: Callable[[], Awaitable[None]],
        *,
        can_persist: bool,
        settings: WorkflowSettings | None = None,
        notifier: Notifier | None = None,
        has_content: Callable[[], bool] | None = None,
        snapshot: Callable[[], object] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            persist: Coroutine function that writes the current graph
            can_persist: Whether the caller is allowed to save at all
            settings: Debounce and suppression timing
            notifier: Receives save success/failure messages
            has_content: Returns False while the graph is empty; the timer is
                not armed for an empty graph
            snapshot: Returns a comparable view of the current graph; a layout
                replacement inside the post-save window is only ignored while
                the snapshot still equals the one taken for the last save
        """
        self._persist = persist
        self._can_persist = can_persist
        self._settings = settings or workflow_settings
        self._notifier = notifier or LogNotifier()
        self._has_content = has_content or (lambda: True)
        self._snapshot = snapshot

        self._dirty = False
        self._saving = False
        self._changed_during_save = False
        self._awaiting_first_layout = True
        self._suppress_until = 0.0
        self._saved_snapshot: object | None = None
        self._closed = False
        self._timer: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> SaveState:
        if self._saving:
            return SaveState.SAVING
        return SaveState.DIRTY if self._dirty else SaveState.CLEAN

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def layout_replaced(self) -> None:
        """Record a full layout replacement.

        The first replacement (the one produced by loading) does not dirty
        the store. Neither does an echo of the last save: a replacement
        inside the post-save window that leaves the graph equal to what was
        saved. Any other replacement is a change.
        """
        if self._awaiting_first_layout:
            self._awaiting_first_layout = False
            logger.debug("initial_layout_ignored")
            return

        if self._is_save_echo():
            logger.debug("layout_change_suppressed")
            return

        self.mark_dirty()

    def mark_dirty(self) -> None:
        """Record a change that must be saved."""
        if self._saving:
            self._changed_during_save = True
            self._dirty = True
            return

        self._dirty = True
        self._arm_timer()

    async def save(self) -> bool:
        """Persist now if allowed, dirty and not already saving.

        Returns:
            True if the workflow was persisted
        """
        if not self._can_persist:
            logger.warning("save_blocked", reason="not_authorized")
            return False
        if not self._dirty or self._saving:
            return False

        self._cancel_timer()
        self._saving = True
        self._changed_during_save = False
        self._idle.clear()
        saving_snapshot = self._snapshot() if self._snapshot is not None else None
        try:
            await self._persist()
        except Exception:
            logger.exception("workflow_save_failed")
            self._notifier.error(SAVE_FAILED_MESSAGE)
            succeeded = False
        else:
            self._dirty = self._changed_during_save
            self._saved_snapshot = saving_snapshot
            self._suppress_until = (
                time.monotonic() + self._settings.save_echo_suppression_seconds
            )
            self._notifier.success(SAVE_SUCCEEDED_MESSAGE)
            logger.info("workflow_saved", still_dirty=self._dirty)
            succeeded = True
        finally:
            self._saving = False
            self._idle.set()

        self._arm_timer()
        return succeeded

    async def close(self) -> None:
        """Cancel the pending timer and wait for an in-flight save."""
        self._closed = True
        timer = self._timer
        self._cancel_timer()
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass
        await self._idle.wait()

    async def __aenter__(self) -> AutosaveController:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _is_save_echo(self) -> bool:
        if self._saving or time.monotonic() >= self._suppress_until:
            return False
        if self._snapshot is None or self._saved_snapshot is None:
            return False
        return self._snapshot() == self._saved_snapshot

    def _arm_timer(self) -> None:
        if self._closed or self._saving or not self._dirty or not self._can_persist:
            return
        if not self._has_content():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("autosave_timer_skipped", reason="no_running_loop")
            return

        self._cancel_timer()
        self._timer = loop.create_task(self._debounce())

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _debounce(self) -> None:
        await asyncio.sleep(self._settings.autosave_debounce_seconds)
        # detach before saving so later changes never cancel an in-flight save
        self._timer = None
        await self.save()
