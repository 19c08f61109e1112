"""Tests for reputation_engine.py - ranking, aggregation and header grouping."""

import os
import sys

import pytest

# Add src directory to path for imports
sys.path.insert(
    0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src")
)

from reputation_engine import (
    DEFAULT_NESTING_EXCEPTIONS,
    FactionSnapshots,
    ReputationEngine,
    aggregate,
    build_snapshots,
    classify_account_wide,
    group_headers,
    is_higher,
    order_characters,
    rank_key,
    resolve_faction_info,
)
from reputation_model import (
    DEFAULT_FACTION_ICON,
    SECTION_ACCOUNT_WIDE,
    SECTION_CHARACTER_BASED,
    CanonicalHeader,
    CharacterRef,
    Contributor,
    FactionInfo,
    FactionMetadata,
    FactionRecord,
    Paragon,
    ProgressKind,
    ProgressSnapshot,
)


ALICE = CharacterRef("Alice-Realm", "Alice")
BOB = CharacterRef("Bob-Realm", "Bob")
CARA = CharacterRef("Cara-Realm", "Cara")


def standing(standing_id, current=0, maximum=0, paragon=None):
    return ProgressSnapshot(
        kind=ProgressKind.STANDING,
        standing_id=standing_id,
        current_value=current,
        max_value=maximum,
        paragon=paragon,
    )


def renown(level, current=0, maximum=2500):
    return ProgressSnapshot(
        kind=ProgressKind.RENOWN,
        renown_level=level,
        current_value=current,
        max_value=maximum,
    )


class StaticStore:
    def __init__(self, records):
        self.records = {r.faction_id: r for r in records}

    def get_all(self):
        return dict(self.records)


class StaticCatalog:
    def __init__(self, headers, metadata=None):
        self.headers = headers
        self.metadata = metadata or {}

    def get(self, faction_id):
        return self.metadata.get(faction_id)

    def get_canonical_headers(self):
        return list(self.headers)


class StaticRoster:
    def __init__(self, characters):
        self.characters = characters

    def get_characters(self):
        return list(self.characters)


def aggregated(faction_id, name, snapshot=None, header_with_rep=False, chain=(), account_wide=False):
    info = FactionInfo(
        faction_id=faction_id,
        name=name,
        is_header_with_rep=header_with_rep,
        parent_header_chain=tuple(chain),
        is_account_wide=account_wide,
    )
    return aggregate(
        FactionSnapshots(info, (Contributor(ALICE, snapshot or standing(5)),))
    )


class TestRankComparison:
    """Tests for the progress comparator."""

    def test_paragon_beats_no_paragon(self):
        """Any paragon outranks a higher standing without one."""
        with_paragon = standing(7, paragon=Paragon(0, 10000))
        assert is_higher(with_paragon, standing(8, 999, 999))

    def test_paragon_value_compared(self):
        """Between two paragons the larger value wins."""
        a = standing(8, paragon=Paragon(500, 10000))
        b = standing(8, paragon=Paragon(200, 10000))
        assert is_higher(a, b)
        assert not is_higher(b, a)

    def test_renown_level_before_standing(self):
        """Renown level is compared before standing."""
        assert is_higher(renown(8), renown(5))
        assert is_higher(renown(1), standing(8, 999, 999))

    def test_standing_before_current_value(self):
        """Standing outranks current value."""
        assert is_higher(standing(7, 0, 21000), standing(6, 11999, 12000))

    def test_current_value_breaks_standing_tie(self):
        """Equal standing falls back to current value."""
        assert is_higher(standing(6, 3000, 12000), standing(6, 2000, 12000))

    def test_exact_tie_is_not_higher(self):
        """Identical progress is not strictly higher either way."""
        a = standing(8, 999, 999)
        b = standing(8, 999, 999)
        assert not is_higher(a, b)
        assert not is_higher(b, a)

    def test_non_numeric_renown_compares_as_zero(self):
        """A sentinel renown level ranks like level 0."""
        sentinel = ProgressSnapshot(kind=ProgressKind.RENOWN, renown_level="?")
        assert rank_key(sentinel)[2] == 0
        assert is_higher(renown(1), sentinel)
        assert not is_higher(sentinel, renown(0))

    def test_nan_values_compare_as_zero(self):
        """NaN levels and values rank like 0 and keep the order total."""
        nan = float("nan")
        nan_renown = ProgressSnapshot(kind=ProgressKind.RENOWN, renown_level=nan)
        nan_current = standing(5, nan)
        assert is_higher(renown(1), nan_renown)
        assert not is_higher(nan_renown, renown(0))
        assert not is_higher(renown(0), nan_renown)
        assert is_higher(standing(5, 1), nan_current)
        assert rank_key(nan_current) == rank_key(standing(5, 0))

    def test_missing_standing_compares_as_zero(self):
        """No standing ranks below any standing."""
        assert is_higher(standing(1), ProgressSnapshot())

    def test_transitive(self):
        """The ordering is transitive across tiers."""
        low = standing(5, 100, 6000)
        mid = renown(3)
        high = standing(8, paragon=Paragon(10, 10000))
        assert is_higher(mid, low)
        assert is_higher(high, mid)
        assert is_higher(high, low)


class TestResolveFactionInfo:
    """Tests for metadata fallback."""

    def test_metadata_overrides_record(self):
        """Catalog name, icon and flags win over the record."""
        record = FactionRecord(2600, name="Old", icon="old.blp")
        catalog = StaticCatalog(
            [],
            {
                2600: FactionMetadata(
                    name="The Severed Threads",
                    icon="new.blp",
                    is_header_with_rep=True,
                    parent_header_chain=("The War Within",),
                )
            },
        )
        info = resolve_faction_info(record, catalog)
        assert info.name == "The Severed Threads"
        assert info.icon == "new.blp"
        assert info.is_header_with_rep is True
        assert info.parent_header_chain == ("The War Within",)

    def test_synthesized_name_and_default_icon(self):
        """Missing names and icons fall back to generated values."""
        info = resolve_faction_info(FactionRecord(1234), StaticCatalog([]))
        assert info.name == "Faction 1234"
        assert info.icon == DEFAULT_FACTION_ICON

    def test_record_name_used_without_metadata(self):
        """The record name is used when the catalog has nothing."""
        info = resolve_faction_info(FactionRecord(72, name="Stormwind"))
        assert info.name == "Stormwind"

    def test_parent_header_is_second_chain_element(self):
        """Only the second chain element names the parent."""
        info = FactionInfo(1, "x", parent_header_chain=("Expansion", "Parent"))
        assert info.parent_header == "Parent"
        assert FactionInfo(1, "x", parent_header_chain=("Expansion",)).parent_header is None


class TestBuildSnapshots:
    """Tests for the snapshot builder."""

    def test_account_wide_anchored_on_first_character(self):
        """Account-wide records produce one pair on the first roster character."""
        record = FactionRecord(9001, name="Shared", is_account_wide=True, value=standing(8))
        result = build_snapshots(record, [BOB, ALICE])
        assert len(result.pairs) == 1
        assert result.pairs[0].character == BOB

    def test_account_wide_without_roster(self):
        """No roster means no representative and no pairs."""
        record = FactionRecord(9001, is_account_wide=True, value=standing(8))
        assert build_snapshots(record, []).pairs == ()

    def test_roster_order_and_unknown_keys(self):
        """Pairs follow roster order; keys not on the roster are dropped."""
        record = FactionRecord(
            2600,
            chars={
                "Ghost-Realm": standing(8),
                BOB.key: standing(6),
                ALICE.key: standing(5),
            },
        )
        result = build_snapshots(record, [ALICE, BOB])
        assert [p.character for p in result.pairs] == [ALICE, BOB]

    def test_duplicate_roster_entries_ignored(self):
        """A character listed twice contributes once."""
        record = FactionRecord(2600, chars={ALICE.key: standing(5)})
        result = build_snapshots(record, [ALICE, ALICE])
        assert len(result.pairs) == 1

    def test_search_filters_by_name(self):
        """Search is a case-insensitive substring of the resolved name."""
        iron = FactionRecord(1, name="Ironforge Brigade", chars={ALICE.key: standing(5)})
        silver = FactionRecord(2, name="Silverwing Sentinels", chars={ALICE.key: standing(5)})
        assert build_snapshots(iron, [ALICE], "iron").pairs
        assert build_snapshots(silver, [ALICE], "iron").pairs == ()
        assert build_snapshots(iron, [ALICE], "IRON").pairs


class TestAggregate:
    """Tests for folding snapshots into one best value."""

    def test_renown_best_character(self):
        """Higher renown wins and differing progress is character-based."""
        info = FactionInfo(2045, "Valdrakken Accord")
        result = aggregate(
            FactionSnapshots(info, (Contributor(ALICE, renown(8)), Contributor(BOB, renown(5))))
        )
        assert result.best_character == ALICE
        assert result.is_account_wide is False
        assert len(result.contributors) == 2

    def test_source_flagged_account_wide(self):
        """A flagged record with one snapshot is account-wide."""
        record = FactionRecord(9001, name="Shared", is_account_wide=True, value=standing(8))
        result = aggregate(build_snapshots(record, [ALICE, BOB]))
        assert result.is_account_wide is True
        assert result.contributors == (Contributor(ALICE, standing(8)),)

    def test_identical_progress_inferred_account_wide(self):
        """Identical progress everywhere is taken as shared; first in roster wins."""
        info = FactionInfo(7000, "Tie")
        snap = standing(8, 1000, 1000)
        result = aggregate(
            FactionSnapshots(info, (Contributor(BOB, snap), Contributor(ALICE, snap)))
        )
        assert result.is_account_wide is True
        assert result.best_character == BOB

    def test_no_pairs(self):
        """Nothing to fold yields None."""
        assert aggregate(FactionSnapshots(FactionInfo(1, "x"))) is None

    def test_single_contributor_not_account_wide(self):
        """One unflagged contributor is not enough evidence."""
        result = aggregated(1, "Solo")
        assert result.is_account_wide is False

    def test_deterministic(self):
        """The same input always gives the same result."""
        info = FactionInfo(1, "x")
        pairs = (Contributor(ALICE, standing(6, 10)), Contributor(BOB, standing(6, 20)))
        assert aggregate(FactionSnapshots(info, pairs)) == aggregate(FactionSnapshots(info, pairs))

    def test_exact_tie_follows_roster_not_chars_order(self):
        """On an exact tie the first roster character wins on every run."""
        snap = standing(8, 1000, 1000)
        zed = CharacterRef("Zed-Realm", "Zed")
        amy = CharacterRef("Amy-Realm", "Amy")
        # chars built in the reverse of roster order
        record = FactionRecord(7000, name="Tie", chars={amy.key: snap, zed.key: snap})
        engine = ReputationEngine(
            StaticStore([record]),
            StaticCatalog([CanonicalHeader("H", (7000,))]),
            StaticRoster([zed, amy]),
        )
        results = [engine.aggregate_all()[7000] for _ in range(3)]
        for result in results:
            assert result.best_character == zed
            assert result.is_account_wide is True
            assert [c.character for c in result.contributors] == [zed, amy]
        assert results[0] == results[1] == results[2]


class TestClassifyAccountWide:
    """Tests for the account-wide classifier."""

    def test_major_faction_always_shared(self):
        """Major factions are account-wide even with differing progress."""
        info = FactionInfo(1, "x", is_major_faction=True)
        pairs = (Contributor(ALICE, renown(3)), Contributor(BOB, renown(9)))
        assert classify_account_wide(info, pairs) is True

    def test_paragon_difference_breaks_heuristic(self):
        """A differing paragon value means separate progress."""
        info = FactionInfo(1, "x")
        pairs = (
            Contributor(ALICE, standing(8, paragon=Paragon(100, 10000))),
            Contributor(BOB, standing(8, paragon=Paragon(200, 10000))),
        )
        assert classify_account_wide(info, pairs) is False

    def test_reward_pending_difference_breaks_heuristic(self):
        """A pending reward on one character means separate progress."""
        info = FactionInfo(1, "x")
        pairs = (
            Contributor(ALICE, standing(8, paragon=Paragon(100, 10000, True))),
            Contributor(BOB, standing(8, paragon=Paragon(100, 10000, False))),
        )
        assert classify_account_wide(info, pairs) is False


class TestGroupHeaders:
    """Tests for header grouping and sub-faction nesting."""

    def test_canonical_order_and_empty_headers(self):
        """Header and faction order follow the canonical list; empty headers vanish."""
        factions = {1: aggregated(1, "One"), 2: aggregated(2, "Two")}
        headers = [
            CanonicalHeader("Empty", (99,)),
            CanonicalHeader("Main", (2, 1)),
        ]
        groups = group_headers(headers, factions)
        assert [g.name for g in groups] == ["Main"]
        assert [f.name for f in groups[0].factions()] == ["Two", "One"]

    def test_missing_faction_skipped(self):
        """Factions without a record drop out; an all-missing header is omitted."""
        factions = {10: aggregated(10, "Ten"), 30: aggregated(30, "Thirty")}
        groups = group_headers([CanonicalHeader("Dragonflight", (10, 20, 30))], factions)
        assert [f.faction_id for f in groups[0].factions()] == [10, 30]
        assert group_headers([CanonicalHeader("Dragonflight", (10, 20, 30))], {}) == ()

    def test_duplicate_ids_within_header(self):
        """A faction ID repeated in one header appears once."""
        factions = {1: aggregated(1, "One")}
        groups = group_headers([CanonicalHeader("Main", (1, 1, 1))], factions)
        assert len(groups[0].entries) == 1

    def test_faction_in_two_headers(self):
        """A faction listed under two headers appears in both."""
        factions = {1: aggregated(1, "One")}
        groups = group_headers(
            [CanonicalHeader("A", (1,)), CanonicalHeader("B", (1,))], factions
        )
        assert [g.name for g in groups] == ["A", "B"]

    def test_children_nested_under_parent(self):
        """Sub-factions move under their header-with-rep parent."""
        factions = {
            10: aggregated(10, "The Severed Threads", header_with_rep=True),
            11: aggregated(11, "The Weaver", chain=("The War Within", "The Severed Threads")),
            12: aggregated(12, "The General", chain=("The War Within", "The Severed Threads")),
            13: aggregated(13, "Council of Dornogal", chain=("The War Within",)),
        }
        groups = group_headers([CanonicalHeader("The War Within", (11, 10, 13, 12))], factions)
        entries = groups[0].entries
        assert [n.faction.name for n in entries] == ["The Severed Threads", "Council of Dornogal"]
        assert [c.name for c in entries[0].children] == ["The Weaver", "The General"]

    def test_child_without_parent_in_header_stays_top_level(self):
        """A child whose parent is absent from the header is a plain entry."""
        factions = {11: aggregated(11, "The Weaver", chain=("TWW", "The Severed Threads"))}
        groups = group_headers([CanonicalHeader("TWW", (11,))], factions)
        assert groups[0].entries[0].faction.name == "The Weaver"
        assert groups[0].entries[0].children == ()

    def test_nesting_exceptions(self):
        """Excepted names never nest."""
        factions = {
            20: aggregated(20, "Loamm Niffen", header_with_rep=True),
            21: aggregated(21, "Winterpelt Furbolg", chain=("DF", "Loamm Niffen")),
        }
        groups = group_headers([CanonicalHeader("DF", (20, 21))], factions)
        assert [n.faction.name for n in groups[0].entries] == ["Loamm Niffen", "Winterpelt Furbolg"]
        assert "Winterpelt Furbolg" in DEFAULT_NESTING_EXCEPTIONS

    def test_custom_nesting_exceptions(self):
        """An empty exception set nests everything eligible."""
        factions = {
            20: aggregated(20, "Loamm Niffen", header_with_rep=True),
            21: aggregated(21, "Winterpelt Furbolg", chain=("DF", "Loamm Niffen")),
        }
        groups = group_headers([CanonicalHeader("DF", (20, 21))], factions, frozenset())
        assert len(groups[0].entries) == 1
        assert groups[0].entries[0].children[0].name == "Winterpelt Furbolg"

    def test_idempotent(self):
        """Grouping the same input twice gives equal trees."""
        factions = {
            10: aggregated(10, "P", header_with_rep=True),
            11: aggregated(11, "C", chain=("H", "P")),
        }
        headers = [CanonicalHeader("H", (10, 11))]
        assert group_headers(headers, factions) == group_headers(headers, factions)

    def test_each_faction_once_per_header(self):
        """A nested child is not also listed at top level."""
        factions = {
            10: aggregated(10, "P", header_with_rep=True),
            11: aggregated(11, "C", chain=("H", "P")),
        }
        groups = group_headers([CanonicalHeader("H", (10, 11))], factions)
        names = [f.name for f in groups[0].factions()]
        assert names == ["P", "C"]


class TestOrderCharacters:
    """Tests for Per-Character ordering."""

    def test_online_first_then_alphabetical(self):
        """The active character leads, the rest sort by name."""
        ordered = order_characters([ALICE, CARA, BOB], CARA.key)
        assert ordered == [CARA, ALICE, BOB]

    def test_no_active_character(self):
        """Without an active character everyone is alphabetical."""
        assert order_characters([CARA, BOB, ALICE], None) == [ALICE, BOB, CARA]


@pytest.fixture
def engine():
    """Engine over a small roster with shared and per-character factions."""
    records = [
        FactionRecord(2590, name="Council of Dornogal", is_account_wide=True, is_major_faction=True, value=renown(25)),
        FactionRecord(2600, name="The Severed Threads", is_header_with_rep=True, chars={ALICE.key: standing(6, 3000, 12000), BOB.key: standing(7, 100, 21000)}),
        FactionRecord(2601, name="The Weaver", parent_header_chain=("The War Within", "The Severed Threads"), chars={ALICE.key: standing(5, 10, 6000)}),
        FactionRecord(72, name="Stormwind", chars={ALICE.key: standing(8, 999, 999), BOB.key: standing(8, 999, 999)}),
    ]
    headers = [
        CanonicalHeader("The War Within", (2590, 2600, 2601)),
        CanonicalHeader("Classic", (72,)),
    ]
    return ReputationEngine(
        StaticStore(records),
        StaticCatalog(headers),
        StaticRoster([ALICE, BOB]),
        active_character_key=BOB.key,
    )


class TestReputationEngine:
    """Tests for the Filtered and Per-Character builders."""

    def test_filtered_sections(self, engine):
        """Factions split into Account-Wide and Character-Based sections."""
        sections = engine.build_filtered()
        assert [s.name for s in sections] == [SECTION_ACCOUNT_WIDE, SECTION_CHARACTER_BASED]

        shared = sections[0]
        assert [h.name for h in shared.headers] == ["The War Within", "Classic"]
        assert {f.name for h in shared.headers for f in h.factions()} == {
            "Council of Dornogal",
            "Stormwind",
        }

        per_char = sections[1]
        assert [h.name for h in per_char.headers] == ["The War Within"]
        node = per_char.headers[0].entries[0]
        assert node.faction.name == "The Severed Threads"
        assert node.faction.best_character == BOB
        assert [c.name for c in node.children] == ["The Weaver"]

    def test_filtered_section_omitted_when_empty(self, engine):
        """A section with nothing in it is not emitted."""
        sections = engine.build_filtered("weaver")
        assert [s.name for s in sections] == [SECTION_CHARACTER_BASED]
        assert sections[0].faction_count == 1

    def test_search_never_leaks(self, engine):
        """No faction outside the search appears in either mode."""
        for search in ("the", "storm", "COUNCIL", "x"):
            names = [
                f.name
                for s in engine.build_filtered(search)
                for h in s.headers
                for f in h.factions()
            ]
            names += [
                f.name
                for v in engine.build_per_character(search)
                for h in v.headers
                for f in h.factions()
            ]
            assert all(search.lower() in n.lower() for n in names)

    def test_filtered_no_match(self, engine):
        """A search with no hits yields no sections."""
        assert engine.build_filtered("nothing here") == ()

    def test_per_character_order_and_content(self, engine):
        """Online first, each tree built from the character's own progress."""
        views = engine.build_per_character()
        assert [v.character for v in views] == [BOB, ALICE]
        assert views[0].is_online is True
        assert views[1].is_online is False

        bob_names = {f.name for h in views[0].headers for f in h.factions()}
        assert bob_names == {"Council of Dornogal", "The Severed Threads", "Stormwind"}
        alice_names = {f.name for h in views[1].headers for f in h.factions()}
        assert "The Weaver" in alice_names

    def test_per_character_uses_own_snapshot(self, engine):
        """Per-Character rows show that character's value, not the best."""
        views = engine.build_per_character("severed")
        alice = next(v for v in views if v.character == ALICE)
        faction = alice.headers[0].factions()[0]
        assert faction.snapshot.standing_id == 6
        assert faction.best_character == ALICE

    def test_per_character_omits_empty_characters(self, engine):
        """Characters with nothing matching are left out."""
        views = engine.build_per_character("weaver")
        assert [v.character for v in views] == [ALICE]

    def test_debug_output(self, engine, capsys):
        """Debug mode prints aggregation details."""
        engine.debug = True
        engine.build_filtered()
        captured = capsys.readouterr()
        assert "[DEBUG] Aggregated 4 factions over 2 characters" in captured.out

    def test_rebuild_reflects_store_changes(self, engine):
        """Each build reads the collaborators again."""
        engine.record_store.records.pop(72)
        sections = engine.build_filtered()
        names = {f.name for s in sections for h in s.headers for f in h.factions()}
        assert "Stormwind" not in names
