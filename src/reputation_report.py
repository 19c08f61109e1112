#!/usr/bin/env python3
"""
RepTracker - Reputation Report Generator

Reads reputation data from the addon SavedVariables and prints the
aggregated (filtered) view or the per-character view as a Markdown report.
"""

import argparse
import os
import sys

from expand_state import MODE_ALL, MODE_FILTERED
from reputation_engine import DEFAULT_NESTING_EXCEPTIONS, ReputationEngine
from reputation_model import (
    AggregatedFaction,
    CharacterView,
    HeaderGroup,
    Section,
    progress_text,
    standing_label,
)
from saved_variables import SavedVariablesDB
from settings import Config, get_config_dir, resolve_saved_variables


def format_faction(faction: AggregatedFaction, show_best: bool = True) -> str:
    """One report line for a faction (without indentation)."""
    label = standing_label(faction.snapshot, faction.info.is_major_faction)
    parts = [faction.name]
    if label:
        parts[0] += f" - {label}"
    parts.append(progress_text(faction.snapshot))
    if faction.snapshot.paragon_reward_pending:
        parts.append("reward available")
    if show_best and not faction.is_account_wide:
        parts.append(f"best: {faction.best_character.name}")
        if len(faction.contributors) > 1:
            parts.append(f"{len(faction.contributors)} characters")
    return " | ".join(parts)


def format_headers(headers: tuple[HeaderGroup, ...], show_best: bool = True) -> list[str]:
    lines = []
    for header in headers:
        lines.append(f"#### {header.name} ({len(header.factions())})")
        lines.append("")
        for node in header.entries:
            lines.append(f"- {format_faction(node.faction, show_best)}")
            for child in node.children:
                lines.append(f"  - {format_faction(child, show_best)}")
        lines.append("")
    return lines


def format_filtered(sections: tuple[Section, ...]) -> list[str]:
    lines = ["## Reputation Report (Filtered)", ""]
    for section in sections:
        lines.append(f"### {section.name} ({section.faction_count})")
        lines.append("")
        lines.extend(format_headers(section.headers))
    return lines


def format_per_character(views: tuple[CharacterView, ...]) -> list[str]:
    lines = ["## Reputation Report (All Characters)", ""]
    for view in views:
        badge = " (Online)" if view.is_online else ""
        lines.append(
            f"### {view.character.name}{badge} - {view.faction_count} reputations"
        )
        lines.append("")
        lines.extend(format_headers(view.headers, show_best=False))
    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a cross-character reputation report from addon data"
    )
    parser.add_argument(
        "--file",
        help="Path to the addon SavedVariables file (default: detect from config)",
    )
    parser.add_argument(
        "--mode",
        choices=[MODE_FILTERED, MODE_ALL],
        default=MODE_FILTERED,
        help="Aggregated view or one tree per character",
    )
    parser.add_argument("--search", default="", help="Only show factions containing this text")
    parser.add_argument("--character", help="Treat this Name-Realm as the online character")
    parser.add_argument("--debug", action="store_true", help="Print debug output")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    config = Config(os.path.join(get_config_dir(), "reptracker_config.json"))
    config.load()
    debug = args.debug or bool(config.get("debug", False))

    sv_path = args.file or resolve_saved_variables(config)
    if not sv_path or not os.path.exists(sv_path):
        print("Could not find addon SavedVariables file", file=sys.stderr)
        sys.exit(2)

    db = SavedVariablesDB(
        sv_path,
        active_override=args.character or config.get("active_character"),
        debug=debug,
    )
    db.load()
    if not db.has_reputation_data():
        print("Reputation data not available in SavedVariables", file=sys.stderr)
        sys.exit(1)

    engine = ReputationEngine(
        db,
        db,
        db,
        active_character_key=db.active_character_key(),
        nesting_exceptions=config.get_nesting_exceptions(DEFAULT_NESTING_EXCEPTIONS),
        debug=debug,
    )

    if args.mode == MODE_ALL:
        lines = format_per_character(engine.build_per_character(args.search))
    else:
        lines = format_filtered(engine.build_filtered(args.search))

    if len(lines) <= 2:
        lines.append(
            "No reputations match your search" if args.search else "No reputations found"
        )
    print("\n".join(lines).rstrip())


if __name__ == "__main__":
    main()
