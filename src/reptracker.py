#!/usr/bin/env python3
"""
RepTracker - Main application controller.
Orchestrates SavedVariables data, the reputation engine and the GTK view.
"""

import gi

gi.require_version("Gtk", "3.0")
from gi.repository import Gtk, GLib

import os
import time

from expand_state import MODE_ALL, MODE_FILTERED, ExpandState
from reputation_engine import DEFAULT_NESTING_EXCEPTIONS, ReputationEngine
from saved_variables import SavedVariablesDB
from settings import (
    THEME_AUTO,
    Config,
    get_config_dir,
    resolve_saved_variables,
)
from reputation_view import (
    THEME_CHOICES,
    ReputationTree,
    ThemeManager,
    show_error,
    show_file_chooser,
    show_warning,
)


class RepTracker:
    """Main application controller."""

    def __init__(self):
        self.config_dir = get_config_dir()
        os.makedirs(self.config_dir, exist_ok=True)

        self.config = Config(os.path.join(self.config_dir, "reptracker_config.json"))
        self.config.load()

        self.debug_enabled = self.config.get("debug", False)
        self.expand_state = ExpandState(self.config.get("reputation_expanded", {}))
        self.refresh_interval = self.config.get_refresh_interval()
        self._last_refresh_time = 0  # For throttling focus reloads
        self._refresh_pending = False
        self._warned_unavailable = False

        self.db = SavedVariablesDB(
            resolve_saved_variables(self.config),
            active_override=self.config.get("active_character"),
            debug=self.debug_enabled,
        )

        # Create main window
        self.window = Gtk.Window(title="Reputation Tracker")
        self.window.connect("destroy", self._on_destroy)
        self.window.connect("focus-in-event", self._on_focus_in)

        self.theme_manager = ThemeManager(self.window, self.config.get("theme", THEME_AUTO))

        self._setup_ui()
        self.theme_manager.apply()

        window_config = self.config.get("window", {})
        width = max(400, min(2000, window_config.get("width", 900)))
        height = max(300, min(1500, window_config.get("height", 650)))
        self.window.set_default_size(width, height)

    def _setup_ui(self):
        """Set up the main UI layout."""
        vbox = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=6)
        vbox.set_margin_start(10)
        vbox.set_margin_end(10)
        vbox.set_margin_top(10)
        vbox.set_margin_bottom(10)
        self.window.add(vbox)

        toolbar = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=6)
        vbox.pack_start(toolbar, False, False, 0)

        self.search_entry = Gtk.SearchEntry()
        self.search_entry.set_placeholder_text("Search factions")
        self.search_entry.set_text(self.config.get("search", ""))
        self.search_entry.connect("search-changed", self._on_search_changed)
        toolbar.pack_start(self.search_entry, True, True, 0)

        self.mode_combo = Gtk.ComboBoxText()
        self.mode_combo.append(MODE_FILTERED, "Filtered")
        self.mode_combo.append(MODE_ALL, "All Characters")
        self.mode_combo.set_active_id(self.config.get("view_mode", MODE_FILTERED))
        if self.mode_combo.get_active_id() is None:
            self.mode_combo.set_active_id(MODE_FILTERED)
        self.mode_combo.connect("changed", self._on_mode_changed)
        toolbar.pack_start(self.mode_combo, False, False, 0)

        self.theme_combo = Gtk.ComboBoxText()
        for theme, label in THEME_CHOICES:
            self.theme_combo.append(theme, label)
        self.theme_combo.set_active_id(self.theme_manager.preference)
        if self.theme_combo.get_active_id() is None:
            self.theme_combo.set_active_id(THEME_AUTO)
        self.theme_combo.connect("changed", self._on_theme_changed)
        toolbar.pack_start(self.theme_combo, False, False, 0)

        open_button = Gtk.Button(label="Open…")
        open_button.connect("clicked", self._on_open_file)
        toolbar.pack_start(open_button, False, False, 0)

        reload_button = Gtk.Button(label="Reload")
        reload_button.connect("clicked", lambda w: self.reload(force=True))
        toolbar.pack_start(reload_button, False, False, 0)

        scrolled = Gtk.ScrolledWindow()
        scrolled.set_policy(Gtk.PolicyType.AUTOMATIC, Gtk.PolicyType.AUTOMATIC)
        vbox.pack_start(scrolled, True, True, 0)

        self.tree = ReputationTree(on_toggle=self._on_toggle)
        scrolled.add(self.tree.treeview)

        self.status_label = Gtk.Label(xalign=0)
        vbox.pack_end(self.status_label, False, False, 0)

    # ==================== Refresh ====================

    @property
    def search_text(self) -> str:
        return self.search_entry.get_text().strip().lower()

    @property
    def view_mode(self) -> str:
        return self.mode_combo.get_active_id() or MODE_FILTERED

    def reload(self, force: bool = False) -> None:
        """Re-read SavedVariables and rebuild, at most once per refresh interval."""
        now = time.time()
        if not force and now - self._last_refresh_time < self.refresh_interval:
            if self.debug_enabled:
                print("[DEBUG] Reload skipped (throttled)")
            return
        self._last_refresh_time = now

        if not self.db.file_path:
            self.db.file_path = resolve_saved_variables(self.config)
        self.db.load()
        self.rebuild()

    def rebuild(self) -> None:
        """Run the engine from scratch and repopulate the tree."""
        if not self.db.has_reputation_data():
            self.tree.store.clear()
            self.status_label.set_text("No reputation data found")
            if not self._warned_unavailable:
                self._warned_unavailable = True
                show_warning(
                    self.window,
                    "Reputation Data Not Available",
                    "Could not find reputation data in the addon SavedVariables.\n\n"
                    "Please ensure:\n"
                    "1. The Warband Nexus addon is installed\n"
                    "2. You have logged in with your characters\n"
                    "3. The game has written SavedVariables (log out or /reload)",
                )
            return

        engine = ReputationEngine(
            self.db,
            self.db,
            self.db,
            active_character_key=self.db.active_character_key(),
            nesting_exceptions=self.config.get_nesting_exceptions(
                DEFAULT_NESTING_EXCEPTIONS
            ),
            debug=self.debug_enabled,
        )
        search = self.search_text
        searching = bool(search)

        if self.view_mode == MODE_ALL:
            views = engine.build_per_character(search)
            self.tree.populate_characters(views, self.expand_state, searching)
            count = len(views)
            noun = "character" if count == 1 else "characters"
        else:
            sections = engine.build_filtered(search)
            self.tree.populate_filtered(sections, self.expand_state, searching)
            count = sum(s.faction_count for s in sections)
            noun = "reputation" if count == 1 else "reputations"

        if count == 0:
            self.status_label.set_text(
                "No reputations match your search" if searching else "No reputations found"
            )
        else:
            self.status_label.set_text(f"{count} {noun}")

    def _schedule_rebuild(self) -> None:
        if self._refresh_pending:
            return
        self._refresh_pending = True
        GLib.idle_add(self._run_scheduled_rebuild)

    def _run_scheduled_rebuild(self):
        self._refresh_pending = False
        self.rebuild()
        return False  # Don't repeat

    # ==================== Event Handlers ====================

    def _on_toggle(self, key: str, expanded: bool) -> None:
        self.expand_state.set(key, expanded)
        self.config.set("reputation_expanded", self.expand_state.to_dict())
        self._schedule_rebuild()

    def _on_search_changed(self, entry):
        self.config.set("search", entry.get_text())
        self._schedule_rebuild()

    def _on_mode_changed(self, combo):
        self.config.set("view_mode", self.view_mode)
        self._schedule_rebuild()

    def _on_theme_changed(self, combo):
        theme = combo.get_active_id() or THEME_AUTO
        self.config.set("theme", theme)
        self.theme_manager.set_preference(theme)

    def _on_focus_in(self, window, event):
        """Re-read SavedVariables when the window regains focus."""
        GLib.idle_add(self._auto_reload)
        return False

    def _auto_reload(self):
        self.reload()
        return False  # Don't repeat

    def _on_open_file(self, widget):
        path = show_file_chooser(
            self.window,
            "Select WarbandNexus.lua",
            initial_folder=os.path.dirname(self.db.file_path) if self.db.file_path else None,
        )
        if not path:
            return
        if not os.path.exists(path):
            show_error(self.window, "File Not Found", path)
            return
        self.config.set("saved_variables", path)
        self.config.save()
        self.db.file_path = path
        self._warned_unavailable = False
        self.reload(force=True)

    def _on_destroy(self, widget):
        """Handle window destroy."""
        width, height = self.window.get_size()
        self.config.set("window", {"width": width, "height": height})
        self.config.set("reputation_expanded", self.expand_state.to_dict())
        self.config.save()
        Gtk.main_quit()

    def run(self):
        """Start the application."""
        self.window.show_all()
        self.reload(force=True)
        Gtk.main()


def main():
    app = RepTracker()
    app.run()


if __name__ == "__main__":
    main()
