"""
Reputation aggregation engine for RepTracker.

Turns per-character faction progress into the nested header trees shown by the
dashboard. Every call performs a full rebuild from the collaborators; nothing
is cached between passes.

Collaborators are duck-typed:
    record_store.get_all() -> dict[int, FactionRecord]
    catalog.get(faction_id) -> FactionMetadata | None
    catalog.get_canonical_headers() -> list[CanonicalHeader]
    roster.get_characters() -> list[CharacterRef]
"""

from dataclasses import dataclass

from reputation_model import (
    DEFAULT_FACTION_ICON,
    SECTION_ACCOUNT_WIDE,
    SECTION_CHARACTER_BASED,
    AggregatedFaction,
    CanonicalHeader,
    CharacterRef,
    CharacterView,
    Contributor,
    FactionInfo,
    FactionNode,
    FactionRecord,
    HeaderGroup,
    ProgressSnapshot,
    Section,
    as_number,
)


# Factions always shown as direct header entries even when their parent
# chain names a header-with-rep faction.
DEFAULT_NESTING_EXCEPTIONS = frozenset({"Winterpelt Furbolg", "Glimmerogg Racer"})


# ==================== Rank Comparison ====================


def rank_key(snapshot: ProgressSnapshot) -> tuple:
    """Comparison key; a larger key is higher progress.

    Tiers: paragon presence, paragon value, renown level, standing, current value.
    """
    has_paragon = snapshot.paragon is not None
    return (
        1 if has_paragon else 0,
        as_number(snapshot.paragon.value) if has_paragon else 0,
        snapshot.renown_rank,
        as_number(snapshot.standing_id),
        as_number(snapshot.current_value),
    )


def is_higher(a: ProgressSnapshot, b: ProgressSnapshot) -> bool:
    """True if a is strictly higher than b. Exact ties are False both ways."""
    return rank_key(a) > rank_key(b)


# ==================== Snapshot Building ====================


def resolve_faction_info(record: FactionRecord, catalog=None) -> FactionInfo:
    """Merge catalog metadata over the record, with synthesized fallbacks."""
    metadata = catalog.get(record.faction_id) if catalog is not None else None

    name = (metadata.name if metadata else None) or record.name
    if not name:
        name = f"Faction {record.faction_id}"
    icon = (metadata.icon if metadata else None) or record.icon or DEFAULT_FACTION_ICON

    is_header_with_rep = record.is_header_with_rep
    parent_chain = tuple(record.parent_header_chain)
    is_renown = record.is_renown
    if metadata is not None:
        if metadata.is_header_with_rep is not None:
            is_header_with_rep = metadata.is_header_with_rep
        if metadata.parent_header_chain is not None:
            parent_chain = tuple(metadata.parent_header_chain)
        if metadata.is_renown is not None:
            is_renown = is_renown or metadata.is_renown

    return FactionInfo(
        faction_id=record.faction_id,
        name=name,
        icon=icon,
        is_header_with_rep=bool(is_header_with_rep),
        parent_header_chain=parent_chain,
        is_renown=bool(is_renown),
        is_major_faction=record.is_major_faction,
        is_account_wide=record.is_account_wide,
    )


def matches_search(name: str, search: str) -> bool:
    """Case-insensitive substring match; an empty search matches everything."""
    if not search:
        return True
    return search.lower() in (name or "").lower()


@dataclass(frozen=True)
class FactionSnapshots:
    """Output of the snapshot builder for one faction."""

    info: FactionInfo
    pairs: tuple[Contributor, ...] = ()


def build_snapshots(
    record: FactionRecord,
    roster: list[CharacterRef],
    search: str = "",
    catalog=None,
) -> FactionSnapshots:
    """Produce the (character, snapshot) pairs for one faction in roster order.

    Account-wide records yield one pair anchored on the first roster character.
    Character keys not on the roster are dropped. A faction whose name does not
    contain the search text yields no pairs at all.
    """
    info = resolve_faction_info(record, catalog)
    if not matches_search(info.name, search):
        return FactionSnapshots(info=info)

    if record.is_account_wide:
        if not roster or record.value is None:
            return FactionSnapshots(info=info)
        return FactionSnapshots(
            info=info, pairs=(Contributor(roster[0], record.value),)
        )

    # Fold order is roster order, never chars-map order
    pairs = []
    seen = set()
    for character in roster:
        if character.key in seen:
            continue
        seen.add(character.key)
        snapshot = record.chars.get(character.key)
        if snapshot is not None:
            pairs.append(Contributor(character, snapshot))
    return FactionSnapshots(info=info, pairs=tuple(pairs))


# ==================== Aggregation ====================


def comparable_tuple(snapshot: ProgressSnapshot) -> tuple:
    """Fields compared across characters to infer shared progress."""
    return (
        snapshot.renown_rank,
        snapshot.standing_id,
        snapshot.current_value,
        snapshot.paragon_value,
        snapshot.paragon_reward_pending,
    )


def classify_account_wide(info: FactionInfo, contributors) -> bool:
    """Decide whether a faction's progress is shared by the whole account.

    With two or more contributors this is a heuristic: identical progress on
    every character is taken as evidence of an account-wide faction.
    """
    if info.is_account_wide or info.is_major_faction:
        return True
    if len(contributors) <= 1:
        return info.is_account_wide
    first = comparable_tuple(contributors[0].snapshot)
    return all(comparable_tuple(c.snapshot) == first for c in contributors[1:])


def aggregate(faction: FactionSnapshots) -> AggregatedFaction | None:
    """Fold the pairs into one best snapshot. Returns None when there are none."""
    if not faction.pairs:
        return None

    best = faction.pairs[0]
    for pair in faction.pairs[1:]:
        if is_higher(pair.snapshot, best.snapshot):
            best = pair

    return AggregatedFaction(
        info=faction.info,
        snapshot=best.snapshot,
        best_character=best.character,
        is_account_wide=classify_account_wide(faction.info, faction.pairs),
        contributors=faction.pairs,
    )


# ==================== Header Grouping ====================


def group_headers(
    headers: list[CanonicalHeader],
    factions: dict[int, AggregatedFaction],
    nesting_exceptions=DEFAULT_NESTING_EXCEPTIONS,
) -> tuple[HeaderGroup, ...]:
    """Build the ordered header tree for a faction map.

    Header order and in-header faction order follow the canonical list.
    Duplicate IDs within a header are dropped; headers left empty are omitted.
    """
    groups = []
    for header in headers:
        included = []
        seen = set()
        for faction_id in header.faction_ids:
            if faction_id in seen:
                continue
            seen.add(faction_id)
            faction = factions.get(faction_id)
            if faction is not None:
                included.append(faction)

        if not included:
            continue
        groups.append(HeaderGroup(header.name, _nest(included, nesting_exceptions)))
    return tuple(groups)


def _nest(included: list[AggregatedFaction], nesting_exceptions) -> tuple[FactionNode, ...]:
    """Move sub-factions under their header-with-rep parent, keeping order."""
    children = {f.name: [] for f in included if f.info.is_header_with_rep}

    top_level = []
    for faction in included:
        parent = faction.info.parent_header
        if faction.info.is_header_with_rep:
            top_level.append(faction)
        elif parent in children and faction.name not in nesting_exceptions:
            children[parent].append(faction)
        else:
            top_level.append(faction)

    nodes = []
    for faction in top_level:
        if faction.info.is_header_with_rep:
            kids = children.get(faction.name, [])
            # A second parent with the same name gets no children
            children[faction.name] = []
            nodes.append(FactionNode(faction, tuple(kids)))
        else:
            nodes.append(FactionNode(faction))
    return tuple(nodes)


# ==================== Views ====================


def order_characters(characters: list[CharacterRef], active_key: str | None) -> list[CharacterRef]:
    """Active character first, then the rest alphabetically by name."""
    online = [c for c in characters if c.key == active_key][:1]
    others = [c for c in characters if c.key != active_key]
    others.sort(key=lambda c: (c.name.lower(), c.name, c.key))
    return online + others


class ReputationEngine:
    """Builds Filtered and Per-Character view models from the collaborators."""

    def __init__(
        self,
        record_store,
        catalog,
        roster,
        active_character_key: str | None = None,
        nesting_exceptions=DEFAULT_NESTING_EXCEPTIONS,
        debug: bool = False,
    ):
        self.record_store = record_store
        self.catalog = catalog
        self.roster = roster
        self.active_character_key = active_character_key
        self.nesting_exceptions = frozenset(nesting_exceptions)
        self.debug = debug

    def _characters(self) -> list[CharacterRef]:
        # Duplicate keys keep their first roster position
        result = []
        seen = set()
        for character in self.roster.get_characters():
            if character.key not in seen:
                seen.add(character.key)
                result.append(character)
        return result

    def _sorted_records(self) -> list[FactionRecord]:
        records = self.record_store.get_all()
        return [records[faction_id] for faction_id in sorted(records)]

    def aggregate_all(self, search: str = "") -> dict[int, AggregatedFaction]:
        """Aggregate every faction over the full roster."""
        search = (search or "").lower()
        roster = self._characters()
        result = {}
        for record in self._sorted_records():
            aggregated = aggregate(build_snapshots(record, roster, search, self.catalog))
            if aggregated is not None:
                result[aggregated.faction_id] = aggregated

        if self.debug:
            shared = sum(1 for f in result.values() if f.is_account_wide)
            print(
                f"[DEBUG] Aggregated {len(result)} factions over "
                f"{len(roster)} characters ({shared} account-wide)"
            )
        return result

    def build_filtered(self, search: str = "") -> tuple[Section, ...]:
        """Aggregated view split into Account-Wide and Character-Based sections."""
        factions = self.aggregate_all(search)
        headers = self.catalog.get_canonical_headers()

        account_wide = {k: f for k, f in factions.items() if f.is_account_wide}
        character_based = {k: f for k, f in factions.items() if not f.is_account_wide}

        sections = []
        for name, subset in (
            (SECTION_ACCOUNT_WIDE, account_wide),
            (SECTION_CHARACTER_BASED, character_based),
        ):
            groups = group_headers(headers, subset, self.nesting_exceptions)
            if groups:
                sections.append(Section(name, groups))
        return tuple(sections)

    def build_per_character(self, search: str = "") -> tuple[CharacterView, ...]:
        """One header tree per character, built only from its own progress."""
        search = (search or "").lower()
        roster = self._characters()
        headers = self.catalog.get_canonical_headers()

        per_character = {c.key: {} for c in roster}
        for record in self._sorted_records():
            info = resolve_faction_info(record, self.catalog)
            if not matches_search(info.name, search):
                continue
            for character in roster:
                if record.is_account_wide:
                    snapshot = record.value
                else:
                    snapshot = record.chars.get(character.key)
                if snapshot is None:
                    continue
                aggregated = aggregate(
                    FactionSnapshots(info, (Contributor(character, snapshot),))
                )
                per_character[character.key][info.faction_id] = aggregated

        views = []
        for character in order_characters(roster, self.active_character_key):
            groups = group_headers(
                headers, per_character[character.key], self.nesting_exceptions
            )
            if not groups:
                continue
            views.append(
                CharacterView(
                    character=character,
                    is_online=character.key == self.active_character_key,
                    headers=groups,
                )
            )

        if self.debug:
            print(f"[DEBUG] Built {len(views)} character views")
        return tuple(views)
