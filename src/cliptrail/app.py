import logging
from dataclasses import dataclass
from typing import Callable

import rumps

from cliptrail import __version__
from cliptrail.config import DB_PATH, IMAGE_DIR, MENU_DISPLAY_COUNT, POLL_INTERVAL
from cliptrail.engine import ClipboardEngine
from cliptrail.models import HistoryEntry
from cliptrail.pasteboard import MacPasteboard
from cliptrail.persistence import PersistenceMirror
from cliptrail.storage import SqliteStorage
from cliptrail.utils import ensure_dirs

logger = logging.getLogger(__name__)

ENTRY_KEY_PREFIX = "cliptrail_entry_"


@dataclass
class MenuItemSpec:
    """Description of a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    entry_id: str | None = None
    state: int | None = None
    is_submenu: bool = False
    children: list["MenuItemSpec | None"] | None = None


class CliptrailApp(rumps.App):
    def __init__(self):
        super().__init__("Cliptrail", title="📋", quit_button=None)
        self._init_app()

    def _init_app(self) -> None:
        """Initialize app components. Separated for testability."""
        ensure_dirs()
        mirror = PersistenceMirror(SqliteStorage(DB_PATH, IMAGE_DIR))
        self._engine = ClipboardEngine(MacPasteboard(), persistence=mirror)
        self._engine.add_listener(self._refresh_menu)
        self._engine.start()
        self._entry_ids: dict[str, str] = {}
        self._build_menu()
        self._timer = rumps.Timer(self._on_tick, POLL_INTERVAL)
        self._timer.start()

    def _build_menu(self) -> None:
        self.menu.clear()
        self._entry_ids.clear()
        self._render_menu_specs(self._compute_menu_specs())

    def _compute_menu_specs(self) -> list[MenuItemSpec | None]:
        store = self._engine.store
        monitoring_label = "Pause Monitoring" if self._engine.monitoring else "Resume Monitoring"
        specs: list[MenuItemSpec | None] = [
            MenuItemSpec(f"Cliptrail v{__version__} - Clipboard History"),
            None,
            MenuItemSpec("Search...", callback=self._on_search),
            MenuItemSpec(monitoring_label, callback=self._on_toggle_monitoring),
            None,
        ]

        pinned_entries = [e for e in store.entries if e.is_pinned]
        if pinned_entries:
            children: list[MenuItemSpec | None] = [self._compute_entry_spec(e) for e in pinned_entries]
            specs.append(MenuItemSpec("📌 Pinned", is_submenu=True, children=children))
            specs.append(None)

        entries = [e for e in store.entries if not e.is_pinned][:MENU_DISPLAY_COUNT]
        if not entries and not pinned_entries:
            specs.append(MenuItemSpec("(No clipboard history)"))
        else:
            specs.extend(self._compute_entry_spec(e) for e in entries)

        selected = store.selected
        specs.append(None)
        if selected:
            specs.append(MenuItemSpec(f"Copy {len(selected)} Selected", callback=self._on_copy_selected))
            specs.append(MenuItemSpec("Clear Selection", callback=self._on_clear_selection))
            specs.append(None)
        specs.extend([
            MenuItemSpec("Clear History", callback=self._on_clear),
            None,
            MenuItemSpec("Quit Cliptrail", callback=self._on_quit),
        ])
        return specs

    def _compute_entry_spec(self, entry: HistoryEntry) -> MenuItemSpec:
        self._entry_ids[f"{ENTRY_KEY_PREFIX}{entry.id}"] = entry.id
        selected = any(e.id == entry.id for e in self._engine.store.selected)
        return MenuItemSpec(
            title=entry.preview or "(empty)",
            callback=self._on_entry_click,
            entry_id=entry.id,
            state=1 if selected else None,
        )

    def _render_menu_specs(self, specs: list[MenuItemSpec | None]) -> None:
        self.menu = [self._render_single_spec(spec) for spec in specs]

    def _render_single_spec(self, spec: MenuItemSpec | None) -> rumps.MenuItem | None:
        if spec is None:
            return None

        if spec.is_submenu and spec.children:
            submenu = rumps.MenuItem(spec.title)
            for child in spec.children:
                submenu.add(self._render_single_spec(child))
            return submenu

        item = rumps.MenuItem(spec.title, callback=spec.callback)
        if spec.state is not None:
            item.state = spec.state
        if spec.entry_id is not None:
            item._id = f"{ENTRY_KEY_PREFIX}{spec.entry_id}"
        return item

    def _refresh_menu(self) -> None:
        self._build_menu()

    def _on_tick(self, _sender) -> None:
        self._engine.tick()

    def _on_entry_click(self, sender) -> None:
        entry_id = self._entry_ids.get(getattr(sender, "_id", ""))
        if entry_id is None:
            return

        # Option toggles the pin, Command toggles multi-selection.
        try:
            from AppKit import NSAlternateKeyMask, NSCommandKeyMask, NSEvent

            modifier_flags = NSEvent.modifierFlags()
            if modifier_flags & NSAlternateKeyMask:
                pinned = self._engine.toggle_pin(entry_id)
                rumps.notification("Cliptrail", "", "Pinned" if pinned else "Unpinned", sound=False)
                return
            if modifier_flags & NSCommandKeyMask:
                self._engine.store.toggle_selection(entry_id)
                self._refresh_menu()
                return
        except ImportError:
            logger.debug("Modifier keys unavailable, copying entry")

        result = self._engine.copy_entry(entry_id)
        if result:
            rumps.notification("Cliptrail", "", "Copied to clipboard", sound=False)
        else:
            rumps.notification("Cliptrail", "", "Could not copy to clipboard", sound=False)

    def _on_copy_selected(self, _sender) -> None:
        count = len(self._engine.store.selected)
        result = self._engine.copy_selected()
        if result:
            self._engine.store.clear_selection()
            self._refresh_menu()
            rumps.notification("Cliptrail", "", f"Copied {count} items to clipboard", sound=False)
        else:
            rumps.notification("Cliptrail", "", "Could not copy selection", sound=False)

    def _on_clear_selection(self, _sender) -> None:
        self._engine.store.clear_selection()
        self._refresh_menu()

    def _on_toggle_monitoring(self, _sender) -> None:
        if self._engine.monitoring:
            self._engine.pause()
        else:
            self._engine.resume()
        self._refresh_menu()

    def _on_search(self, _sender) -> None:
        response = rumps.Window(
            message="Search clipboard history:",
            title="Cliptrail Search",
            default_text="",
            ok="Search",
            cancel="Cancel",
            dimensions=(300, 24),
        ).run()

        if response.clicked and response.text.strip():
            query = response.text.strip()
            results = self._engine.search(query)[:MENU_DISPLAY_COUNT]

            if not results:
                rumps.alert("Cliptrail Search", f'No results for "{query}"')
                return

            self._entry_ids.clear()
            self.menu.clear()
            self._render_menu_specs(self._compute_search_results_specs(query, results))

    def _compute_search_results_specs(self, query: str, results: list[HistoryEntry]) -> list[MenuItemSpec | None]:
        specs: list[MenuItemSpec | None] = [
            MenuItemSpec(f'Search: "{query}" ({len(results)} results)'),
            None,
            MenuItemSpec("Show All", callback=lambda _: self._refresh_menu()),
            None,
        ]
        specs.extend(self._compute_entry_spec(e) for e in results)
        specs.extend([
            None,
            MenuItemSpec("Quit Cliptrail", callback=self._on_quit),
        ])
        return specs

    def _on_clear(self, _sender) -> None:
        if rumps.alert("Cliptrail", "Clear all clipboard history?", ok="Clear", cancel="Cancel"):
            self._engine.clear_all()

    def _on_quit(self, _sender) -> None:
        self._timer.stop()
        self._engine.shutdown()
        rumps.quit_application()
