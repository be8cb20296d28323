import argparse
import logging
import shutil
import subprocess
import sys
from pathlib import Path

from cliptrail.config import DB_PATH, IMAGE_DIR, LOG_PATH
from cliptrail.utils import ensure_dirs

AGENT_LABEL = "com.cliptrail.app"
PLIST_NAME = f"{AGENT_LABEL}.plist"
LAUNCHAGENT_DIR = Path.home() / "Library" / "LaunchAgents"
PLIST_PATH = LAUNCHAGENT_DIR / PLIST_NAME


def get_cliptrail_path() -> str:
    """Get the path to the cliptrail executable."""
    cliptrail_path = shutil.which("cliptrail")
    if cliptrail_path:
        return cliptrail_path
    return f"{sys.executable} -m cliptrail"


def create_plist(cliptrail_path: str) -> str:
    """Generate the LaunchAgent plist content."""
    arguments = "\n".join(f"        <string>{part}</string>" for part in cliptrail_path.split() + ["run"])
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{AGENT_LABEL}</string>
    <key>ProgramArguments</key>
    <array>
{arguments}
    </array>
    <key>RunAtLoad</key>
    <true/>
    <key>KeepAlive</key>
    <true/>
    <key>StandardOutPath</key>
    <string>{LOG_PATH}</string>
    <key>StandardErrorPath</key>
    <string>{LOG_PATH}</string>
</dict>
</plist>
"""


def _launchctl(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run(["launchctl", *args], capture_output=True, text=True)


def install_launchagent() -> int:
    """Write the LaunchAgent plist and load it, replacing any loaded copy."""
    ensure_dirs()
    cliptrail_path = get_cliptrail_path()
    print(f"Installing LaunchAgent for: {cliptrail_path}")

    LAUNCHAGENT_DIR.mkdir(parents=True, exist_ok=True)
    if PLIST_PATH.exists():
        _launchctl("unload", str(PLIST_PATH))
    PLIST_PATH.write_text(create_plist(cliptrail_path))
    print(f"Created: {PLIST_PATH}")

    result = _launchctl("load", str(PLIST_PATH))
    if result.returncode != 0:
        print(f"Failed to load LaunchAgent: {result.stderr}")
        return 1
    print("Cliptrail is now recording clipboard history in the background and will start on login.")
    return 0


def uninstall_launchagent() -> int:
    if not PLIST_PATH.exists():
        print("LaunchAgent not installed.")
        return 0
    _launchctl("unload", str(PLIST_PATH))
    PLIST_PATH.unlink()
    print(f"Removed {PLIST_PATH}; Cliptrail will no longer start on login.")
    return 0


def check_status() -> int:
    """Report whether the agent is loaded. Exit code 0 means running."""
    installed = PLIST_PATH.exists()
    if _launchctl("list", AGENT_LABEL).returncode == 0:
        print(f"Cliptrail is running ({AGENT_LABEL}).")
        return 0
    if installed:
        print(f"Cliptrail is not running; LaunchAgent installed but not loaded: {PLIST_PATH}")
    else:
        print("Cliptrail is not running. Run: cliptrail install")
    return 1


def list_history(limit: int, query: str | None = None) -> int:
    """Print stored history entries, newest first."""
    from cliptrail.history import HistoryStore
    from cliptrail.storage import SqliteStorage

    if not DB_PATH.exists():
        print("No clipboard history yet.")
        return 0

    with SqliteStorage(DB_PATH, IMAGE_DIR) as storage:
        store = HistoryStore(max_size=sys.maxsize)
        store.load(storage.fetch_all())

    entries = store.search(query or "")[:limit]
    if not entries:
        print("No matching entries.")
        return 0
    for entry in entries:
        pin = "*" if entry.is_pinned else " "
        stamp = entry.timestamp.strftime("%Y-%m-%d %H:%M")
        print(f"{pin} {stamp}  {entry.category.value:<7}  {entry.preview}")
    return 0


def run_app():
    """Run the Cliptrail application."""
    ensure_dirs()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
    )

    from cliptrail.app import CliptrailApp

    app = CliptrailApp()
    app.run()


def main():
    parser = argparse.ArgumentParser(
        description="Cliptrail - Clipboard history for macOS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run         Run Cliptrail in foreground (default)
  install     Install as LaunchAgent (runs on login)
  uninstall   Remove LaunchAgent
  status      Check if Cliptrail is running
  list        Print stored history

Examples:
  cliptrail install           # Install and start as background service
  cliptrail list -n 5         # Show the five newest entries
  cliptrail list -q invoice   # Search stored history
""",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "install", "uninstall", "status", "list"],
        help="Command to run",
    )
    parser.add_argument("-n", "--limit", type=int, default=20, help="Entries to show with 'list'")
    parser.add_argument("-q", "--query", help="Search text for 'list'")

    args = parser.parse_args()

    if args.command == "install":
        sys.exit(install_launchagent())
    elif args.command == "uninstall":
        sys.exit(uninstall_launchagent())
    elif args.command == "status":
        sys.exit(check_status())
    elif args.command == "list":
        sys.exit(list_history(args.limit, args.query))
    else:
        run_app()


if __name__ == "__main__":
    main()
