"""
Reputation data model for RepTracker.
Contains progress snapshots, faction records, the aggregated view-model types
and display formatting helpers, with no GTK dependencies.
"""

import math
from dataclasses import dataclass, field
from enum import Enum


DEFAULT_FACTION_ICON = "Interface\\Icons\\Achievement_Reputation_01"

# Filtered-mode section names
SECTION_ACCOUNT_WIDE = "Account-Wide"
SECTION_CHARACTER_BASED = "Character-Based"

# Classic standing scale
STANDING_NAMES = {
    1: "Hated",
    2: "Hostile",
    3: "Unfriendly",
    4: "Neutral",
    5: "Friendly",
    6: "Honored",
    7: "Revered",
    8: "Exalted",
}
MIN_STANDING = 1
MAX_STANDING = 8

# Standing colors as hex, used by the view
STANDING_COLORS = {
    1: "#cc2121",
    2: "#ed6666",
    3: "#ff9933",
    4: "#ffff00",
    5: "#00ff00",
    6: "#00ff96",
    7: "#00ffff",
    8: "#ba66ff",
}
RENOWN_COLOR = "#ffd100"
PARAGON_COLOR = "#ff66ff"


class ProgressKind(Enum):
    """Primary progress representation of a snapshot."""

    STANDING = "standing"
    RENOWN = "renown"
    FRIENDSHIP_RANK = "friendship_rank"


def as_number(value) -> int | float:
    """Return value if it is a finite real number, else 0.

    Some sources write a non-numeric sentinel where a level is expected;
    those compare as 0. Booleans, NaN and infinities are not numbers here.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return value


def _optional_int(value) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _standing_id(value) -> int | None:
    """Standing clamped to the classic scale; None when missing."""
    standing_id = _optional_int(value)
    if standing_id is None:
        return None
    return max(MIN_STANDING, min(MAX_STANDING, standing_id))


@dataclass(frozen=True)
class CharacterRef:
    """A character on the account, identified by its "Name-Realm" key."""

    key: str
    name: str = ""
    class_token: str = ""
    level: int = 0

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "CharacterRef":
        """Create a CharacterRef from a SavedVariables character table."""
        name = data.get("name") or (key.rsplit("-", 1)[0] if "-" in key else key)
        class_token = data.get("classFile") or data.get("class") or ""
        return cls(
            key=key,
            name=str(name),
            class_token=str(class_token),
            level=_optional_int(data.get("level")) or 0,
        )


@dataclass(frozen=True)
class Paragon:
    """Repeating reward track that exists once base progress is maxed."""

    value: int
    threshold: int
    reward_pending: bool = False


@dataclass(frozen=True)
class ProgressSnapshot:
    """One character's progress with one faction at a point in time."""

    kind: ProgressKind = ProgressKind.STANDING
    current_value: int = 0
    max_value: int = 0
    standing_id: int | None = None
    # May hold a non-numeric sentinel from some sources; see as_number()
    renown_level: object = None
    renown_max_level: int | None = None
    rank_name: str | None = None
    paragon: Paragon | None = None
    is_watched: bool = False
    at_war_with: bool = False
    last_updated: int = 0

    @property
    def paragon_value(self) -> int | None:
        return self.paragon.value if self.paragon else None

    @property
    def paragon_threshold(self) -> int | None:
        return self.paragon.threshold if self.paragon else None

    @property
    def paragon_reward_pending(self) -> bool:
        return bool(self.paragon and self.paragon.reward_pending)

    @property
    def renown_rank(self) -> int | float:
        """Renown level normalized for comparison."""
        return as_number(self.renown_level)

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressSnapshot":
        """Create a snapshot from an addon progress table (camelCase keys)."""
        rank_name = data.get("rankName")
        if not isinstance(rank_name, str) or not rank_name:
            rank_name = None
        renown_level = data.get("renownLevel")
        standing_id = _standing_id(data.get("standingID"))

        if rank_name is not None:
            kind = ProgressKind.FRIENDSHIP_RANK
        elif renown_level is not None:
            kind = ProgressKind.RENOWN
        else:
            kind = ProgressKind.STANDING

        paragon = None
        paragon_value = _optional_int(data.get("paragonValue"))
        paragon_threshold = _optional_int(data.get("paragonThreshold"))
        if paragon_value is not None and paragon_threshold is not None:
            paragon = Paragon(
                value=paragon_value,
                threshold=paragon_threshold,
                reward_pending=bool(data.get("paragonRewardPending", False)),
            )

        return cls(
            kind=kind,
            current_value=_optional_int(data.get("currentValue")) or 0,
            max_value=_optional_int(data.get("maxValue")) or 0,
            standing_id=standing_id,
            renown_level=renown_level,
            renown_max_level=_optional_int(data.get("renownMaxLevel")),
            rank_name=rank_name,
            paragon=paragon,
            is_watched=bool(data.get("isWatched", False)),
            at_war_with=bool(data.get("atWarWith", False)),
            last_updated=_optional_int(data.get("lastUpdated")) or 0,
        )


@dataclass(frozen=True)
class FactionMetadata:
    """Best-effort display metadata for a faction. Any field may be missing."""

    name: str | None = None
    icon: str | None = None
    is_header_with_rep: bool | None = None
    parent_header_chain: tuple[str, ...] | None = None
    is_renown: bool | None = None


@dataclass(frozen=True)
class FactionRecord:
    """Raw stored progress for one faction.

    Account-wide factions carry a single shared ``value``; all others carry
    ``chars``, a map of character key to snapshot.
    """

    faction_id: int
    name: str = ""
    icon: str = ""
    is_account_wide: bool = False
    is_renown: bool = False
    is_major_faction: bool = False
    is_header_with_rep: bool = False
    parent_header_chain: tuple[str, ...] = ()
    value: ProgressSnapshot | None = None
    chars: dict[str, ProgressSnapshot] = field(default_factory=dict)


@dataclass(frozen=True)
class CanonicalHeader:
    """An externally ordered group of faction IDs (expansion or category)."""

    name: str
    faction_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class FactionInfo:
    """Resolved display identity of a faction after metadata fallback."""

    faction_id: int
    name: str
    icon: str = DEFAULT_FACTION_ICON
    is_header_with_rep: bool = False
    parent_header_chain: tuple[str, ...] = ()
    is_renown: bool = False
    is_major_faction: bool = False
    is_account_wide: bool = False

    @property
    def parent_header(self) -> str | None:
        """The sub-header this faction sits under, if any."""
        if len(self.parent_header_chain) > 1:
            return self.parent_header_chain[1]
        return None


@dataclass(frozen=True)
class Contributor:
    character: CharacterRef
    snapshot: ProgressSnapshot


@dataclass(frozen=True)
class AggregatedFaction:
    """The single best progress value for a faction plus everyone who has it."""

    info: FactionInfo
    snapshot: ProgressSnapshot
    best_character: CharacterRef
    is_account_wide: bool
    contributors: tuple[Contributor, ...] = ()

    @property
    def faction_id(self) -> int:
        return self.info.faction_id

    @property
    def name(self) -> str:
        return self.info.name


@dataclass(frozen=True)
class FactionNode:
    """A top-level faction row; children only for header-with-rep parents."""

    faction: AggregatedFaction
    children: tuple[AggregatedFaction, ...] = ()


@dataclass(frozen=True)
class HeaderGroup:
    name: str
    entries: tuple[FactionNode, ...] = ()

    def factions(self) -> list[AggregatedFaction]:
        """All factions in this header, parents before their children."""
        result = []
        for node in self.entries:
            result.append(node.faction)
            result.extend(node.children)
        return result


@dataclass(frozen=True)
class Section:
    """A Filtered-mode partition ("Account-Wide" or "Character-Based")."""

    name: str
    headers: tuple[HeaderGroup, ...] = ()

    @property
    def faction_count(self) -> int:
        return sum(len(h.factions()) for h in self.headers)


@dataclass(frozen=True)
class CharacterView:
    """A Per-Character-mode tree for one character."""

    character: CharacterRef
    is_online: bool
    headers: tuple[HeaderGroup, ...] = ()

    @property
    def faction_count(self) -> int:
        return sum(len(h.factions()) for h in self.headers)

    @property
    def has_pending_reward(self) -> bool:
        return any(
            f.snapshot.paragon_reward_pending
            for h in self.headers
            for f in h.factions()
        )


# ==================== Display Formatting ====================


def format_number(num: int) -> str:
    """Format number with thousand separators."""
    return f"{int(num):,}"


def get_standing_name(standing_id: int | None) -> str:
    """Get standing name from standing ID (1-8)."""
    return STANDING_NAMES.get(standing_id, "Unknown")


def get_standing_color(standing_id: int | None) -> str:
    return STANDING_COLORS.get(standing_id, "#ffffff")


def format_progress(current: int, maximum: int) -> str:
    """Format "current / max", or just current when there is no max."""
    if maximum > 0:
        return f"{format_number(current)} / {format_number(maximum)}"
    return format_number(current)


def is_base_maxed(snapshot: ProgressSnapshot) -> bool:
    """Check if base reputation is complete, independent of paragon."""
    if snapshot.paragon is not None:
        # Paragon only unlocks after base progress is maxed
        return True
    if snapshot.kind != ProgressKind.STANDING and snapshot.renown_max_level:
        return snapshot.renown_rank >= snapshot.renown_max_level
    if snapshot.max_value <= 0:
        return False
    return snapshot.current_value >= snapshot.max_value


def standing_label(snapshot: ProgressSnapshot, is_major_faction: bool = False) -> str:
    """Text shown next to the faction name: rank, "Renown N" or standing."""
    if snapshot.kind == ProgressKind.FRIENDSHIP_RANK:
        return snapshot.rank_name
    if is_major_faction or snapshot.kind == ProgressKind.RENOWN:
        if isinstance(snapshot.renown_level, bool) or not isinstance(
            snapshot.renown_level, (int, float)
        ):
            return "Renown ?"
        return f"Renown {int(snapshot.renown_level)}"
    if snapshot.standing_id is not None:
        return get_standing_name(snapshot.standing_id)
    return ""


def progress_text(snapshot: ProgressSnapshot) -> str:
    """Progress column text: paragon progress, "Maxed" or current / max."""
    if snapshot.paragon is not None:
        return format_progress(snapshot.paragon.value, snapshot.paragon.threshold)
    if is_base_maxed(snapshot):
        return "Maxed"
    return format_progress(snapshot.current_value, snapshot.max_value)


def tooltip_lines(faction: AggregatedFaction) -> list[str]:
    """Tooltip for a faction row: shared status, then every contributor's progress."""
    lines = [faction.name]
    if faction.snapshot.paragon is not None:
        paragon = faction.snapshot.paragon
        lines.append(f"Paragon: {format_progress(paragon.value, paragon.threshold)}")
        if paragon.reward_pending:
            lines.append("Reward Available!")
    if faction.info.is_renown:
        lines.append("Major Faction (Renown)")
    if faction.is_account_wide:
        lines.append("Account-wide progress")
        # Inferred account-wide factions still show who matched
        if len(faction.contributors) <= 1:
            return lines

    lines.append("")
    for contributor in faction.contributors:
        marker = "*" if contributor.character.key == faction.best_character.key else " "
        label = standing_label(contributor.snapshot, faction.info.is_major_faction)
        detail = " ".join(p for p in (label, progress_text(contributor.snapshot)) if p)
        lines.append(f"{marker} {contributor.character.name}: {detail}")
    return lines


def progress_fraction(snapshot: ProgressSnapshot) -> float:
    """Fill ratio of the progress bar in [0, 1]."""
    if snapshot.paragon is not None:
        current, maximum = snapshot.paragon.value, snapshot.paragon.threshold
    else:
        current, maximum = snapshot.current_value, snapshot.max_value
    if maximum <= 0:
        return 0.0
    return min(1.0, max(0.0, current / maximum))


def progress_color(snapshot: ProgressSnapshot) -> str:
    if snapshot.paragon is not None:
        return PARAGON_COLOR
    if snapshot.kind != ProgressKind.STANDING and snapshot.renown_rank > 0:
        return RENOWN_COLOR
    return get_standing_color(snapshot.standing_id or 4)
