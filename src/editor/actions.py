"""
Input events for the editor surface.

Clicks are routed by a closed ``Action`` enum rather than by the raw
``data-action`` strings found in the markup; ``ClickEvent.from_attributes``
is the single place those strings are interpreted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Action(str, Enum):
    MOVE_UP = "move-up"
    MOVE_DOWN = "move-down"
    DELETE_BLOCK = "delete-block"
    TOGGLE_CHECK = "toggle-check"
    ADD_CHIP = "add-chip"
    REMOVE_CHIP = "remove-chip"
    ADD_BULLET = "add-bullet"
    REMOVE_BULLET = "remove-bullet"
    SWITCH_VARIANT = "switch-variant"
    UPLOAD_IMAGE = "upload-image"


class SurfaceEvent(str, Enum):
    """What the host UI should do after the surface handled an input."""
    NONE = "none"
    CHANGED = "changed"
    SAVE_REQUESTED = "save_requested"
    SLASH_MENU = "slash_menu"
    OPEN_FILE_PICKER = "open_file_picker"


@dataclass
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    alt: bool = False

    @property
    def mod(self) -> bool:
        """Ctrl on Windows/Linux, Cmd on macOS."""
        return self.ctrl or self.meta


@dataclass
class ClickEvent:
    action: Action
    node_index: int
    field: Optional[str] = None
    item_index: Optional[int] = None
    variant: Optional[str] = None
    modifier: bool = False

    @classmethod
    def from_attributes(
        cls,
        attrs: Dict[str, str],
        node_index: int,
        item_index: Optional[int] = None,
        modifier: bool = False,
    ) -> Optional["ClickEvent"]:
        """
        Interpret the attributes of a clicked element.

        Args:
            attrs: Attributes of the clicked element
            node_index: Index of the top-level node containing it
            item_index: Position of the clicked chip/bullet/list item
            modifier: Ctrl/Cmd held during the click

        Returns:
            ClickEvent, or None when the element carries no action
        """
        raw = attrs.get("data-action")
        if raw:
            try:
                action = Action(raw)
            except ValueError:
                return None
            return cls(
                action=action,
                node_index=node_index,
                field=attrs.get("data-target"),
                item_index=item_index,
                variant=attrs.get("data-variant"),
                modifier=modifier,
            )

        # Chips and bullets are removed by modifier+click on the item itself
        if modifier and attrs.get("data-chip") == "1":
            return cls(Action.REMOVE_CHIP, node_index, field=attrs.get("data-target", "chips"),
                       item_index=item_index, modifier=True)
        if modifier and attrs.get("data-bullet") == "1":
            return cls(Action.REMOVE_BULLET, node_index, field=attrs.get("data-target", "bullets"),
                       item_index=item_index, modifier=True)
        if "data-checked" in attrs:
            return cls(Action.TOGGLE_CHECK, node_index, item_index=item_index, modifier=modifier)
        return None
