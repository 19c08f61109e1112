"""
Expand/collapse state for the reputation tree.

Every collapsible node is addressed by a composite key built from the view
mode, the scope it lives in (a character key or a section name) and its own
name or faction ID. Keys never depend on row positions.
"""

MODE_FILTERED = "filtered"
MODE_ALL = "all"

KEY_PREFIX = "rep"

# Node kinds
NODE_CHARACTER = "char"
NODE_SECTION = "section"
NODE_HEADER = "header"
NODE_FACTION = "faction"


def make_key(*parts) -> str:
    return ":".join([KEY_PREFIX, *(str(p) for p in parts)])


def character_key(char_key: str) -> str:
    return make_key(MODE_ALL, NODE_CHARACTER, char_key)


def section_key(section_name: str) -> str:
    return make_key(MODE_FILTERED, NODE_SECTION, section_name)


def header_key(mode: str, scope: str, header_name: str) -> str:
    """Key for a canonical header inside a character (all) or section (filtered)."""
    return make_key(mode, scope, NODE_HEADER, header_name)


def faction_key(mode: str, scope: str, faction_id: int) -> str:
    """Key for a header-with-rep faction that has children."""
    return make_key(mode, scope, NODE_FACTION, faction_id)


def default_expanded(
    kind: str, is_online: bool = False, has_pending_reward: bool = False
) -> bool:
    """Expanded state used when nothing is stored for a node."""
    if kind == NODE_CHARACTER:
        return is_online or has_pending_reward
    if kind == NODE_SECTION:
        return False
    # Headers and parent factions start open
    return True


class ExpandState:
    """Flat map of composite key -> expanded flag.

    Setting one key never changes another. Callers rebuild the whole tree
    after any change.
    """

    def __init__(self, data: dict | None = None):
        self._data: dict[str, bool] = {}
        if data:
            for key, value in data.items():
                if isinstance(key, str) and isinstance(value, bool):
                    self._data[key] = value

    def is_expanded(self, key: str, default: bool, force: bool = False) -> bool:
        """Stored value for key, else default. force=True (active search) opens it."""
        if force:
            return True
        return self._data.get(key, default)

    def set(self, key: str, expanded: bool) -> None:
        self._data[key] = bool(expanded)

    def toggle(self, key: str, default: bool) -> bool:
        """Flip the node's current state and return the new value."""
        new_value = not self._data.get(key, default)
        self._data[key] = new_value
        return new_value

    def reset(self, key: str) -> None:
        """Forget the stored override so the default applies again."""
        self._data.pop(key, None)

    def to_dict(self) -> dict:
        return dict(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key) -> bool:
        return key in self._data
