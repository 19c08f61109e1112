"""
SavedVariables access for RepTracker.

Reads the tracking addon's SavedVariables file (a Lua table assignment) with
slpp and exposes it through the collaborator interfaces used by the
reputation engine: records, faction metadata, canonical headers, roster and
the active character.
"""

import os
import re

from slpp import slpp as lua

from reputation_model import (
    CanonicalHeader,
    CharacterRef,
    FactionMetadata,
    FactionRecord,
    ProgressSnapshot,
)


DB_VARIABLE = "WarbandNexusDB"


def decode_saved_variables(content: str, variable: str = DB_VARIABLE) -> dict:
    """Decode the table assigned to `variable` in a SavedVariables file.

    Returns an empty dict when the variable is missing or not a table.
    """
    match = re.search(rf"(?m)^\s*{re.escape(variable)}\s*=\s*", content)
    if not match:
        return {}
    data = lua.decode(content[match.end():])
    return data if isinstance(data, dict) else {}


def as_list(value) -> list:
    """Lua arrays decode as lists, or as int-keyed dicts when keys are explicit."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        int_keys = sorted(k for k in value if isinstance(k, int) and not isinstance(k, bool))
        return [value[k] for k in int_keys]
    return []


def as_table(value) -> dict:
    """Lua tables that happen to be sequential decode as lists; index them from 1."""
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {i + 1: v for i, v in enumerate(value)}
    return {}


def _faction_id(key) -> int | None:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def _string_chain(value) -> tuple[str, ...]:
    return tuple(str(v) for v in as_list(value) if isinstance(v, str))


def parse_metadata(data: dict) -> FactionMetadata:
    """Build FactionMetadata from a factionMetadata entry."""
    parent_headers = data.get("parentHeaders")
    is_header_with_rep = data.get("isHeaderWithRep")
    is_renown = data.get("isRenown")
    # Icons are texture paths or numeric file IDs
    icon = data.get("iconTexture") or data.get("icon")
    return FactionMetadata(
        name=str(data["name"]) if data.get("name") else None,
        icon=str(icon) if icon else None,
        is_header_with_rep=is_header_with_rep if isinstance(is_header_with_rep, bool) else None,
        parent_header_chain=_string_chain(parent_headers) if parent_headers is not None else None,
        is_renown=is_renown if isinstance(is_renown, bool) else None,
    )


def parse_record(faction_id: int, data: dict) -> FactionRecord:
    """Build a FactionRecord from a global reputations entry."""
    is_account_wide = bool(data.get("isAccountWide", False))

    value = None
    chars = {}
    if is_account_wide:
        if isinstance(data.get("value"), dict):
            value = ProgressSnapshot.from_dict(data["value"])
    else:
        for char_key, progress in as_table(data.get("chars")).items():
            if isinstance(char_key, str) and isinstance(progress, dict):
                chars[char_key] = ProgressSnapshot.from_dict(progress)

    icon = data.get("icon") or data.get("iconTexture") or ""
    return FactionRecord(
        faction_id=faction_id,
        name=str(data.get("name") or ""),
        icon=str(icon),
        is_account_wide=is_account_wide,
        is_renown=bool(data.get("isRenown", False)),
        is_major_faction=bool(data.get("isMajorFaction", False)),
        is_header_with_rep=bool(data.get("isHeaderWithRep", False)),
        parent_header_chain=_string_chain(data.get("parentHeaders")),
        value=value,
        chars=chars,
    )


def parse_headers(value) -> list[CanonicalHeader]:
    """Build the canonical header list from a reputationHeaders array."""
    headers = []
    for entry in as_list(value):
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        ids = entry.get("factions", entry.get("factionIDs"))
        faction_ids = tuple(
            fid for fid in (_faction_id(v) for v in as_list(ids)) if fid is not None
        )
        headers.append(CanonicalHeader(str(entry["name"]), faction_ids))
    return headers


class SavedVariablesDB:
    """Record store, metadata catalog and roster backed by one SavedVariables file."""

    def __init__(
        self,
        file_path: str | None = None,
        active_override: str | None = None,
        debug: bool = False,
    ):
        self.file_path = file_path
        self.active_override = active_override
        self.debug = debug
        self._records: dict[int, FactionRecord] = {}
        self._metadata: dict[int, FactionMetadata] = {}
        self._characters: list[CharacterRef] = []
        self._last_seen: dict[str, int] = {}
        self._char_headers: dict[str, list[CanonicalHeader]] = {}
        self._global_headers: list[CanonicalHeader] = []

    def load(self) -> None:
        """Load and decode the SavedVariables file. Failures leave the store empty."""
        self.load_text("")
        if not self.file_path or not os.path.exists(self.file_path):
            return
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                content = f.read()
        except (IOError, UnicodeDecodeError) as e:
            print(f"Warning: Failed to load SavedVariables file: {e}")
            return
        self.load_text(content)
        if self.debug:
            print(
                f"[DEBUG] Loaded {len(self._characters)} characters and "
                f"{len(self._records)} factions from {self.file_path}"
            )

    def load_text(self, content: str) -> None:
        """Replace the store contents with the decoded SavedVariables text."""
        try:
            db = decode_saved_variables(content) if content else {}
        except Exception as e:
            print(f"Warning: Failed to parse SavedVariables: {e}")
            db = {}
        self._build(db)

    def _build(self, db: dict) -> None:
        global_data = db.get("global")
        if not isinstance(global_data, dict):
            global_data = {}

        characters_table = as_table(global_data.get("characters"))

        self._characters = []
        self._last_seen = {}
        self._char_headers = {}
        for key in sorted(k for k in characters_table if isinstance(k, str)):
            char_data = characters_table[key]
            if not isinstance(char_data, dict):
                continue
            self._characters.append(CharacterRef.from_dict(key, char_data))
            last_seen = char_data.get("lastSeen")
            if isinstance(last_seen, (int, float)) and not isinstance(last_seen, bool):
                self._last_seen[key] = last_seen
            char_headers = parse_headers(char_data.get("reputationHeaders"))
            if char_headers:
                self._char_headers[key] = char_headers

        self._metadata = {}
        for key, entry in as_table(global_data.get("factionMetadata")).items():
            faction_id = _faction_id(key)
            if faction_id is not None and isinstance(entry, dict):
                self._metadata[faction_id] = parse_metadata(entry)

        self._records = {}
        if "reputations" in global_data:
            for key, entry in as_table(global_data.get("reputations")).items():
                faction_id = _faction_id(key)
                if faction_id is not None and isinstance(entry, dict):
                    self._records[faction_id] = parse_record(faction_id, entry)
        else:
            self._records = self._records_from_characters(characters_table)

        self._global_headers = parse_headers(global_data.get("reputationHeaders"))

    def _records_from_characters(self, characters_table: dict) -> dict[int, FactionRecord]:
        """Older layout: progress lives under each character's reputations table."""
        chars_by_faction: dict[int, dict[str, ProgressSnapshot]] = {}
        major: set[int] = set()
        for key in sorted(k for k in characters_table if isinstance(k, str)):
            char_data = characters_table[key]
            if not isinstance(char_data, dict):
                continue
            for fkey, progress in as_table(char_data.get("reputations")).items():
                faction_id = _faction_id(fkey)
                if faction_id is None or not isinstance(progress, dict):
                    continue
                chars_by_faction.setdefault(faction_id, {})[key] = (
                    ProgressSnapshot.from_dict(progress)
                )
                if progress.get("isMajorFaction"):
                    major.add(faction_id)

        return {
            faction_id: FactionRecord(
                faction_id=faction_id,
                is_major_faction=faction_id in major,
                chars=chars,
            )
            for faction_id, chars in chars_by_faction.items()
        }

    # ==================== Collaborator Interfaces ====================

    def has_reputation_data(self) -> bool:
        """Whether the addon has stored any reputation progress at all."""
        return bool(self._records)

    def get_all(self) -> dict[int, FactionRecord]:
        return dict(self._records)

    def get(self, faction_id: int) -> FactionMetadata | None:
        return self._metadata.get(faction_id)

    def get_canonical_headers(self) -> list[CanonicalHeader]:
        """Global header order, else the active (or first) character's scan order."""
        if self._global_headers:
            return list(self._global_headers)
        active_key = self.active_character_key()
        if active_key in self._char_headers:
            return list(self._char_headers[active_key])
        for character in self._characters:
            if character.key in self._char_headers:
                return list(self._char_headers[character.key])
        return []

    def get_characters(self) -> list[CharacterRef]:
        return list(self._characters)

    def active_character_key(self) -> str | None:
        """The override if it names a known character, else the most recently seen."""
        known = {c.key for c in self._characters}
        if self.active_override and self.active_override in known:
            return self.active_override
        best_key = None
        best_seen = None
        for character in self._characters:
            seen = self._last_seen.get(character.key)
            if seen is not None and (best_seen is None or seen > best_seen):
                best_key, best_seen = character.key, seen
        return best_key
