"""
Autosave controller.

Debounces title and body edits, diffs them against what the store last
accepted, and writes only what changed. Metadata tags (company/role) go
through their own per-field timers.

Baseline discipline: each save captures the values it sends at dispatch
time and carries a sequence number. When a save resolves, the baseline
moves to the captured value only if that save is newer than the one that
last moved it, so a slow older save can never roll the baseline back.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Set

from src.common.config import Config
from src.common.logger import EditorLogger, get_logger
from src.editor.envelope import block_html, wrap_html

UNTITLED = "제목 없음"
METADATA_FIELDS = ("company", "role")


class SaveState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


STATUS_MESSAGES = {
    SaveState.IDLE: "",
    SaveState.PENDING: "저장 대기…",
    SaveState.SAVING: "저장중…",
    SaveState.SAVED: "저장됨",
    SaveState.ERROR: "저장 실패",
}


class DocumentStore(Protocol):
    """Persistence collaborator used by the controller."""

    async def fetch(self, doc_id: str) -> Dict[str, Any]: ...

    async def update_title(self, doc_id: str, title: str) -> None: ...

    async def update_content(self, doc_id: str, content: Dict[str, Any]) -> None: ...

    async def update_metadata(self, doc_id: str, fields: Dict[str, Optional[str]]) -> None: ...


@dataclass
class SaveResult:
    """What a single save attempt wrote."""
    title_written: bool = False
    body_written: bool = False
    error: Optional[str] = None

    @property
    def wrote_anything(self) -> bool:
        return self.title_written or self.body_written


def normalize_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    return title or UNTITLED


class AutosaveController:
    """
    Debounced, diffing autosave for one document.

    Args:
        store: DocumentStore implementation
        doc_id: Document being edited
        debounce: Quiet period before a save is dispatched (seconds)
        settle: Delay before SAVED/ERROR falls back to IDLE (seconds)
        on_state_change: Called with (state, message) on every transition
        log: Logger of the surface editing the same document; its document
             context is shared
    """

    def __init__(
        self,
        store: DocumentStore,
        doc_id: str,
        debounce: Optional[float] = None,
        settle: Optional[float] = None,
        on_state_change: Optional[Callable[[SaveState, str], None]] = None,
        log: Optional[EditorLogger] = None,
    ):
        self.store = store
        self.doc_id = doc_id
        self.debounce = Config.AUTOSAVE_DEBOUNCE_SECONDS if debounce is None else debounce
        self.settle = Config.AUTOSAVE_SETTLE_SECONDS if settle is None else settle
        self.on_state_change = on_state_change
        if log is not None:
            self.logger = log.child("autosave", __name__)
        else:
            self.logger = get_logger(__name__, doc_id=doc_id, component="autosave")

        self.state = SaveState.IDLE

        # Current (unsaved) values and the last values the store accepted
        self._body: Optional[str] = None
        self._title: Optional[str] = None
        self._saved_body: Optional[str] = None
        self._saved_title: Optional[str] = None

        # Values carried by saves still in flight
        self._inflight_body: Optional[str] = None
        self._inflight_title: Optional[str] = None

        self._seq = 0
        self._body_seq = 0
        self._title_seq = 0

        self._timer: Optional[asyncio.TimerHandle] = None
        self._settle_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

        self._metadata: Dict[str, Optional[str]] = {}
        self._saved_metadata: Dict[str, Optional[str]] = {}
        self._metadata_timers: Dict[str, asyncio.TimerHandle] = {}

    # ========================================================================
    # State
    # ========================================================================

    @property
    def status_message(self) -> str:
        return STATUS_MESSAGES[self.state]

    @property
    def saved_body(self) -> Optional[str]:
        return self._saved_body

    @property
    def saved_title(self) -> Optional[str]:
        return self._saved_title

    def _set_state(self, state: SaveState) -> None:
        if state == self.state:
            return
        self.logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state
        if state in (SaveState.SAVED, SaveState.ERROR):
            self._schedule_settle()
        if self.on_state_change:
            self.on_state_change(state, STATUS_MESSAGES[state])

    def _schedule_settle(self) -> None:
        if self._settle_timer is not None:
            self._settle_timer.cancel()
        loop = asyncio.get_running_loop()
        self._settle_timer = loop.call_later(self.settle, self._settle_to_idle)

    def _settle_to_idle(self) -> None:
        self._settle_timer = None
        if self.state in (SaveState.SAVED, SaveState.ERROR):
            self._set_state(SaveState.IDLE)

    # ========================================================================
    # Hydration
    # ========================================================================

    async def hydrate(self) -> Dict[str, Any]:
        """
        Load the document and take its stored title/body as the baseline.

        Returns:
            The fetched document, with ``html`` set to its body HTML
        """
        doc = await self.store.fetch(self.doc_id)
        html = block_html(doc.get("content"))
        title = normalize_title(doc.get("title"))

        self._body = self._saved_body = html
        self._title = self._saved_title = title
        for name in METADATA_FIELDS:
            self._metadata[name] = self._saved_metadata[name] = doc.get(name)

        self.logger.info(f"Hydrated ({len(html)} chars)")
        return {**doc, "html": html, "title": title}

    # ========================================================================
    # Mutations
    # ========================================================================

    def body_changed(self, html: str) -> None:
        self._body = html
        self._touch()

    def title_changed(self, title: str) -> None:
        self._title = normalize_title(title)
        self._touch()

    def _touch(self) -> None:
        """Restart the debounce and mark the document as pending."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce, self._dispatch)
        self._set_state(SaveState.PENDING)

    def _dispatch(self) -> None:
        self._timer = None
        self._track(asyncio.ensure_future(self.save()))

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ========================================================================
    # Saving
    # ========================================================================

    async def flush(self) -> SaveResult:
        """Save now, skipping the debounce (manual save, Ctrl/Cmd+S)."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return await self.save()

    async def save(self) -> SaveResult:
        """
        Write whatever differs from the baseline.

        Never raises for store failures: the state becomes ERROR and the
        edits stay in memory until the next mutation or flush.
        """
        body, title = self._body, self._title
        # The newest value already sent is the baseline, so a revert during a save is still written
        body_baseline = self._inflight_body if self._inflight_body is not None else self._saved_body
        title_baseline = self._inflight_title if self._inflight_title is not None else self._saved_title
        write_body = body is not None and body != body_baseline
        write_title = title is not None and title != title_baseline

        if not (write_body or write_title):
            if self.state == SaveState.PENDING and self._timer is None and not self._tasks_in_flight():
                self._set_state(SaveState.IDLE)
            return SaveResult()

        self._seq += 1
        seq = self._seq
        if write_body:
            self._inflight_body = body
        if write_title:
            self._inflight_title = title
        self._set_state(SaveState.SAVING)

        try:
            if write_title:
                await self.store.update_title(self.doc_id, title)
            if write_body:
                await self.store.update_content(self.doc_id, wrap_html(body))
        except Exception as e:
            self.logger.error(f"Save #{seq} failed: {e}")
            self._clear_inflight(body if write_body else None, title if write_title else None)
            if self._timer is None:
                self._set_state(SaveState.ERROR)
            return SaveResult(error=str(e))

        self._clear_inflight(body if write_body else None, title if write_title else None)
        if write_body and seq > self._body_seq:
            self._saved_body = body
            self._body_seq = seq
        if write_title and seq > self._title_seq:
            self._saved_title = title
            self._title_seq = seq

        self.logger.info(
            f"Save #{seq} wrote "
            f"{'title ' if write_title else ''}{'body' if write_body else ''}".rstrip()
        )

        # A mutation after dispatch keeps the document pending
        if self._timer is None and seq == self._seq:
            self._set_state(SaveState.SAVED)
        return SaveResult(title_written=write_title, body_written=write_body)

    def _clear_inflight(self, body: Optional[str], title: Optional[str]) -> None:
        if body is not None and body == self._inflight_body:
            self._inflight_body = None
        if title is not None and title == self._inflight_title:
            self._inflight_title = None

    def _tasks_in_flight(self) -> bool:
        current = asyncio.current_task()
        return any(task is not current and not task.done() for task in self._tasks)

    # ========================================================================
    # Metadata
    # ========================================================================

    def metadata_changed(self, name: str, value: Optional[str]) -> None:
        """
        Debounce a metadata tag edit. Each field has its own timer, so
        editing one tag does not delay the other.
        """
        if name not in METADATA_FIELDS:
            raise ValueError(f"Unknown metadata field '{name}'")
        value = (value or "").strip() or None
        self._metadata[name] = value

        timer = self._metadata_timers.pop(name, None)
        if timer is not None:
            timer.cancel()
        loop = asyncio.get_running_loop()
        self._metadata_timers[name] = loop.call_later(self.debounce, self._dispatch_metadata, name)

    def _dispatch_metadata(self, name: str) -> None:
        self._metadata_timers.pop(name, None)
        self._track(asyncio.ensure_future(self.save_metadata(name)))

    async def save_metadata(self, name: str) -> bool:
        """Write one metadata field if it differs from the stored value."""
        value = self._metadata.get(name)
        if name in self._saved_metadata and self._saved_metadata[name] == value:
            return False
        try:
            await self.store.update_metadata(self.doc_id, {name: value})
        except Exception as e:
            self.logger.error(f"Metadata '{name}' save failed: {e}")
            self._set_state(SaveState.ERROR)
            return False
        self._saved_metadata[name] = value
        return True

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def drain(self) -> None:
        """Wait for every dispatched save to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self) -> None:
        """Cancel pending timers (unsaved edits are not written)."""
        for timer in [self._timer, self._settle_timer, *self._metadata_timers.values()]:
            if timer is not None:
                timer.cancel()
        self._timer = None
        self._settle_timer = None
        self._metadata_timers.clear()
