"""
Document-scoped logging for the editor and services.

Every message carries the document id and the component that emitted it,
both in a ``[doc:xxxxxxxx] [component]`` prefix and as ``doc_id`` /
``component`` attributes on the LogRecord. A surface and the autosave
controller editing the same document share one context through
``EditorLogger.child``.
"""

import logging
import os
from typing import Any, Dict, Optional


# Global debug mode flag, set via environment
_GLOBAL_DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"

DOC_ID_PREFIX_LENGTH = 8


def is_debug_mode() -> bool:
    """Check if debug mode is enabled globally."""
    return _GLOBAL_DEBUG_MODE


class EditorLogger:
    """
    Logger bound to one document and one component.

    Args:
        name: Logger name (usually __name__)
        doc_id: Document being edited, if any
        component: Emitting component ("surface", "autosave", "ai", ...)
        debug_mode: Enable DEBUG for this logger; None uses the global flag
    """

    def __init__(
        self,
        name: str,
        doc_id: Optional[str] = None,
        component: Optional[str] = None,
        debug_mode: Optional[bool] = None
    ):
        self.logger = logging.getLogger(name)
        self.doc_id = doc_id
        self.component = component

        self._debug_mode = debug_mode if debug_mode is not None else is_debug_mode()
        if self._debug_mode:
            self.logger.setLevel(logging.DEBUG)

    def child(self, component: str, name: Optional[str] = None) -> "EditorLogger":
        """Same document and debug setting, different component."""
        return EditorLogger(name or self.logger.name, self.doc_id, component, self._debug_mode)

    @property
    def context(self) -> Dict[str, Optional[str]]:
        return {"doc_id": self.doc_id, "component": self.component}

    def _format_message(self, message: str) -> str:
        prefix_parts = []
        if self.doc_id:
            prefix_parts.append(f"[doc:{self.doc_id[:DOC_ID_PREFIX_LENGTH]}]")
        if self.component:
            prefix_parts.append(f"[{self.component}]")

        if prefix_parts:
            return f"{' '.join(prefix_parts)} {message}"
        return message

    def _log(self, level: int, message: str, kwargs: Dict[str, Any]) -> None:
        extra = {**self.context, **kwargs.pop("extra", {})}
        self.logger.log(level, self._format_message(message), extra=extra, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)


def get_logger(
    name: str,
    doc_id: Optional[str] = None,
    component: Optional[str] = None,
    debug_mode: Optional[bool] = None
) -> EditorLogger:
    """Logger tagged with ``doc_id`` and ``component`` (both optional)."""
    return EditorLogger(name, doc_id, component, debug_mode)
