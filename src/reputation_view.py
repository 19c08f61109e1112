"""
View layer for RepTracker.
Contains GTK UI components, theming, and display logic for the reputation tree.
"""

import gi
import os

gi.require_version("Gtk", "3.0")
from gi.repository import Gtk, GLib

from expand_state import (
    MODE_ALL,
    MODE_FILTERED,
    NODE_CHARACTER,
    NODE_FACTION,
    NODE_HEADER,
    NODE_SECTION,
    ExpandState,
    character_key,
    default_expanded,
    faction_key,
    header_key,
    section_key,
)
from reputation_model import (
    AggregatedFaction,
    CharacterView,
    HeaderGroup,
    Section,
    progress_color,
    progress_fraction,
    progress_text,
    standing_label,
    tooltip_lines,
)
from settings import THEME_AUTO, THEME_DARK, THEME_LIGHT, detect_system_theme


# Per-theme colors substituted into THEME_CSS
THEME_PALETTES = {
    THEME_DARK: {"bg": "#2d2d2d", "fg": "#ffffff", "tree_bg": "#3c3c3c", "entry_bg": "#404040"},
    THEME_LIGHT: {"bg": "#ffffff", "fg": "#000000", "tree_bg": "#ffffff", "entry_bg": "#ffffff"},
}

THEME_CSS = """
window {{ background-color: {bg}; color: {fg}; }}
treeview {{ background-color: {tree_bg}; color: {fg}; }}
treeview:selected {{ background-color: #4a90d9; color: #ffffff; }}
entry, combobox {{ background-color: {entry_bg}; color: {fg}; }}
"""

# Theme choices offered in the toolbar: (config value, label)
THEME_CHOICES = (
    (THEME_AUTO, "Auto Theme"),
    (THEME_LIGHT, "Light"),
    (THEME_DARK, "Dark"),
)

# Tree store columns
COL_NAME = 0
COL_STANDING = 1
COL_STANDING_COLOR = 2
COL_PROGRESS = 3
COL_PERCENT = 4
COL_SHOW_BAR = 5
COL_BEST = 6
COL_TOOLTIP = 7
COL_KEY = 8
COL_KIND = 9
COL_DEFAULT = 10


def resolve_theme(preference: str) -> str:
    """Concrete light/dark theme for a stored preference."""
    if preference == THEME_AUTO:
        return THEME_DARK if detect_system_theme() else THEME_LIGHT
    return THEME_DARK if preference == THEME_DARK else THEME_LIGHT


class ThemeManager:
    """Applies the light or dark palette to the window's screen."""

    def __init__(self, window: Gtk.Window, preference: str = THEME_AUTO):
        self.window = window
        self.preference = preference
        self._css_provider = Gtk.CssProvider()
        self._installed = False

    def apply(self) -> None:
        theme = resolve_theme(self.preference)

        settings = Gtk.Settings.get_default()
        if settings:
            settings.set_property("gtk-application-prefer-dark-theme", theme == THEME_DARK)

        css = THEME_CSS.format(**THEME_PALETTES[theme])
        try:
            self._css_provider.load_from_data(css.encode("utf-8"))
        except GLib.Error as e:
            print(f"Warning: Failed to load theme CSS: {e}")
            return

        screen = self.window.get_screen()
        if screen and not self._installed:
            Gtk.StyleContext.add_provider_for_screen(
                screen, self._css_provider, Gtk.STYLE_PROVIDER_PRIORITY_APPLICATION
            )
            self._installed = True

    def set_preference(self, preference: str) -> None:
        """Switch to another theme preference and re-apply it."""
        self.preference = preference
        self.apply()


class ReputationTree:
    """GTK TreeView showing sections or characters, headers and factions.

    Expand state lives in an ExpandState map; the tree only reports toggles
    through on_toggle(key, expanded) and is repopulated from scratch.
    """

    def __init__(self, on_toggle=None):
        self._on_toggle = on_toggle
        self._populating = False

        self.store = Gtk.TreeStore(
            str,  # name (markup)
            str,  # standing / renown label
            str,  # standing color
            str,  # progress text
            int,  # progress percent
            bool,  # show progress bar
            str,  # best character
            str,  # tooltip
            str,  # expand key
            str,  # node kind
            bool,  # default expanded
        )
        self.treeview = Gtk.TreeView(model=self.store)
        self.treeview.set_tooltip_column(COL_TOOLTIP)
        self._setup_columns()

        self.treeview.connect("row-expanded", self._handle_row_toggled, True)
        self.treeview.connect("row-collapsed", self._handle_row_toggled, False)

    def _setup_columns(self) -> None:
        """Create and configure all columns."""
        renderer = Gtk.CellRendererText()
        column = Gtk.TreeViewColumn("Faction", renderer, markup=COL_NAME)
        column.set_expand(True)
        column.set_resizable(True)
        self.treeview.append_column(column)

        renderer = Gtk.CellRendererText()
        column = Gtk.TreeViewColumn(
            "Standing", renderer, text=COL_STANDING, foreground=COL_STANDING_COLOR
        )
        column.set_resizable(True)
        self.treeview.append_column(column)

        renderer = Gtk.CellRendererProgress()
        column = Gtk.TreeViewColumn(
            "Progress",
            renderer,
            text=COL_PROGRESS,
            value=COL_PERCENT,
            visible=COL_SHOW_BAR,
        )
        column.set_min_width(200)
        self.treeview.append_column(column)

        renderer = Gtk.CellRendererText()
        column = Gtk.TreeViewColumn("Best", renderer, text=COL_BEST)
        column.set_resizable(True)
        self.treeview.append_column(column)

    def _handle_row_toggled(self, treeview, iter, path, expanded):
        if self._populating or not self._on_toggle:
            return
        key = self.store[iter][COL_KEY]
        if key:
            self._on_toggle(key, expanded)

    # ==================== Population ====================

    def _append_group_row(self, parent, title: str, key: str, kind: str, default: bool):
        return self.store.append(
            parent,
            [
                f"<b>{GLib.markup_escape_text(title)}</b>",
                "",
                "#ffffff",
                "",
                0,
                False,
                "",
                "",
                key,
                kind,
                default,
            ],
        )

    def _append_faction_row(self, parent, faction: AggregatedFaction, key: str, show_best: bool):
        snapshot = faction.snapshot
        best = ""
        if show_best and not faction.is_account_wide:
            best = faction.best_character.name
        return self.store.append(
            parent,
            [
                GLib.markup_escape_text(faction.name),
                standing_label(snapshot, faction.info.is_major_faction) or "",
                progress_color(snapshot),
                progress_text(snapshot),
                int(progress_fraction(snapshot) * 100),
                True,
                best,
                GLib.markup_escape_text("\n".join(tooltip_lines(faction))),
                key,
                NODE_FACTION,
                default_expanded(NODE_FACTION),
            ],
        )

    def _append_headers(self, parent, headers: tuple[HeaderGroup, ...], mode: str, scope: str, show_best: bool):
        for header in headers:
            title = f"{header.name} ({len(header.factions())})"
            header_iter = self._append_group_row(
                parent,
                title,
                header_key(mode, scope, header.name),
                NODE_HEADER,
                default_expanded(NODE_HEADER),
            )
            for node in header.entries:
                key = ""
                if node.children:
                    key = faction_key(mode, scope, node.faction.faction_id)
                row = self._append_faction_row(header_iter, node.faction, key, show_best)
                for child in node.children:
                    self._append_faction_row(row, child, "", show_best)

    def populate_filtered(self, sections: tuple[Section, ...], state: ExpandState, searching: bool = False) -> None:
        """Fill the tree with the Account-Wide / Character-Based sections."""
        self._populating = True
        try:
            self.store.clear()
            for section in sections:
                section_iter = self._append_group_row(
                    None,
                    f"{section.name} ({section.faction_count})",
                    section_key(section.name),
                    NODE_SECTION,
                    default_expanded(NODE_SECTION),
                )
                self._append_headers(
                    section_iter, section.headers, MODE_FILTERED, section.name, True
                )
            self._restore_expanded(None, state, searching)
        finally:
            self._populating = False

    def populate_characters(self, views: tuple[CharacterView, ...], state: ExpandState, searching: bool = False) -> None:
        """Fill the tree with one branch per character."""
        self._populating = True
        try:
            self.store.clear()
            for view in views:
                badge = " (Online)" if view.is_online else ""
                title = f"{view.character.name}{badge} - {view.faction_count} reputations"
                char_iter = self._append_group_row(
                    None,
                    title,
                    character_key(view.character.key),
                    NODE_CHARACTER,
                    default_expanded(
                        NODE_CHARACTER,
                        is_online=view.is_online,
                        has_pending_reward=view.has_pending_reward,
                    ),
                )
                self._append_headers(
                    char_iter, view.headers, MODE_ALL, view.character.key, False
                )
            self._restore_expanded(None, state, searching)
        finally:
            self._populating = False

    def _restore_expanded(self, parent, state: ExpandState, searching: bool) -> None:
        """Expand rows top-down; children of collapsed rows are left alone."""
        iter = self.store.iter_children(parent)
        while iter is not None:
            row = self.store[iter]
            key = row[COL_KEY]
            if key and self.store.iter_has_child(iter):
                # An active search opens characters and headers
                force = searching and row[COL_KIND] in (NODE_CHARACTER, NODE_HEADER)
                if state.is_expanded(key, row[COL_DEFAULT], force=force):
                    self.treeview.expand_row(self.store.get_path(iter), False)
                    self._restore_expanded(iter, state, searching)
            iter = self.store.iter_next(iter)


def show_message(
    parent: Gtk.Window,
    message_type: Gtk.MessageType,
    title: str,
    secondary: str = None,
) -> None:
    """Show a message dialog."""
    dialog = Gtk.MessageDialog(
        parent=parent,
        modal=True,
        message_type=message_type,
        buttons=Gtk.ButtonsType.OK,
        text=title,
    )
    if secondary:
        dialog.format_secondary_text(secondary)
    dialog.run()
    dialog.destroy()


def show_error(parent: Gtk.Window, title: str, message: str) -> None:
    """Show an error dialog."""
    show_message(parent, Gtk.MessageType.ERROR, title, message)


def show_warning(parent: Gtk.Window, title: str, message: str) -> None:
    """Show a warning dialog."""
    show_message(parent, Gtk.MessageType.WARNING, title, message)


def show_file_chooser(
    parent: Gtk.Window,
    title: str,
    initial_folder: str = None,
) -> str | None:
    """Show a file chooser for a .lua file. Returns selected path or None."""
    dialog = Gtk.FileChooserDialog(
        title=title,
        parent=parent,
        action=Gtk.FileChooserAction.OPEN,
    )
    dialog.add_button("Cancel", Gtk.ResponseType.CANCEL)
    dialog.add_button("Open", Gtk.ResponseType.OK)

    lua_filter = Gtk.FileFilter()
    lua_filter.set_name("SavedVariables (*.lua)")
    lua_filter.add_pattern("*.lua")
    dialog.add_filter(lua_filter)

    if initial_folder and os.path.exists(initial_folder):
        dialog.set_current_folder(initial_folder)

    response = dialog.run()
    result = dialog.get_filename() if response == Gtk.ResponseType.OK else None
    dialog.destroy()
    return result
