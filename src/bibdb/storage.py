"""Loading, saving, merging and exporting ``.bib`` files."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .config import DatabaseConfig
from .database import Database
from .exceptions import BackupError, FileOperationError
from .parser import LoadSummary, parse_text
from .serialize import iter_records, serialize
from .types import DuplicatePolicy

logger = logging.getLogger(__name__)


def read_bib_text(bib_path: Path) -> str:
    """Read a ``.bib`` file as UTF-8, falling back to Latin-1 for legacy files.

    Raises:
        FileOperationError: If the file cannot be read
    """
    try:
        raw = bib_path.read_bytes()
    except OSError as e:
        raise FileOperationError(f"Failed to read {bib_path}: {e}") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning(f"{bib_path} is not valid UTF-8, reading it as Latin-1")
        return raw.decode("latin-1")


def load_database(
    bib_path: Path,
    config: DatabaseConfig | None = None,
    policy: DuplicatePolicy = DuplicatePolicy.REJECT,
) -> tuple[Database, LoadSummary]:
    """Create a database for ``bib_path`` and read the file into it.

    A file that does not exist yet gives an empty database, to be created on
    the first save.

    Args:
        bib_path: Path to the ``.bib`` file
        config: Database settings
        policy: Duplicate-key policy applied within the file

    Returns:
        Tuple of (database, load summary)

    Raises:
        FileOperationError: If the file exists but cannot be read
    """
    database = Database(bib_path, config)

    if not bib_path.exists():
        logger.info(f"{bib_path} does not exist, starting an empty database")
        return database, LoadSummary()

    logger.debug(f"Loading bibliography: {bib_path}")
    summary = parse_text(read_bib_text(bib_path), database, policy)
    database.modified = False
    database.needs_backup = True

    logger.info(
        f"Loaded {summary.entries} entries, {summary.strings} strings"
        f"{' and a preamble' if summary.preamble else ''} from {bib_path.name}"
    )
    return database, summary


def merge_file(
    database: Database, bib_path: Path, policy: DuplicatePolicy = DuplicatePolicy.UNIQUIFY
) -> LoadSummary:
    """Read another ``.bib`` file into an existing database.

    Merged entries receive a timestamp when timestamps are enabled.

    Raises:
        FileOperationError: If the file cannot be read
    """
    if not bib_path.exists():
        raise FileOperationError(f"Bibliography file not found: {bib_path}")

    logger.debug(f"Merging {bib_path} into {database.name}")
    summary = parse_text(read_bib_text(bib_path), database, policy, timestamp=True)
    logger.info(f"Merged {summary.entries} entries and {summary.strings} strings from {bib_path}")
    return summary


def backup_path_for(bib_path: Path, config: DatabaseConfig) -> Path:
    return bib_path.with_name(bib_path.name + config.backup_suffix)


def create_backup(bib_path: Path, config: DatabaseConfig) -> Path:
    """Copy the current contents of ``bib_path`` next to it.

    Returns:
        Path of the backup file

    Raises:
        BackupError: If the copy cannot be written
    """
    backup_path = backup_path_for(bib_path, config)
    try:
        backup_path.write_bytes(bib_path.read_bytes())
    except OSError as e:
        raise BackupError(f"Failed to create backup at {backup_path}: {e}") from e

    logger.info(f"Backup created at {backup_path}")
    return backup_path


def save_database(database: Database, bib_path: Path | None = None) -> bool:
    """Write the database to ``bib_path`` (defaults to its own file).

    Before the first overwrite of an existing file in a database's lifetime,
    the old contents are backed up if backups are enabled. Failures are
    logged and reported through the return value; the database stays as it
    was.

    Returns:
        True if the file was written, False otherwise
    """
    target = bib_path or database.file_path
    if target is None:
        logger.error(f"Cannot save {database.name}: no file name")
        return False

    config = database.config
    if database.needs_backup and config.create_backups and target.exists():
        try:
            create_backup(target, config)
        except BackupError as e:
            logger.error(f"✗ Backup failed, not saving: {e}")
            return False

    try:
        with open(target, "w", encoding="utf-8") as f:
            f.write(serialize(database))
    except OSError as e:
        logger.error(f"Failed to write {target}: {e}")
        return False

    if bib_path is None or bib_path == database.file_path:
        database.modified = False
        database.needs_backup = False
    logger.info(f"✓ Saved {len(database.entries)} entries to {target}")
    return True


def export_entries(database: Database, keys: Iterable[str], target: Path) -> int:
    """Append entries, and the string macros they use, to another ``.bib`` file.

    Returns:
        Number of entries written

    Raises:
        FileOperationError: If the target cannot be written
    """
    selected = []
    for key in keys:
        if key in database.entries:
            selected.append(key)
        else:
            logger.warning(f"Entry {key} not found in {database.name}, not exported")
    if not selected:
        logger.info("No entries to export")
        return 0

    strings = database.strings_used_by(selected)
    records = list(iter_records(database, keys=selected, strings=strings, include_preamble=False))

    try:
        prefix = ""
        if target.exists() and target.stat().st_size > 0:
            prefix = "\n"
        with open(target, "a", encoding="utf-8") as f:
            f.write(prefix + "\n".join(records))
    except OSError as e:
        raise FileOperationError(f"Failed to export to {target}: {e}") from e

    logger.info(f"Exported {len(selected)} entries to {target}")
    return len(selected)


def copy_entries(
    source: Database,
    keys: Iterable[str],
    target: Database,
    policy: DuplicatePolicy = DuplicatePolicy.UNIQUIFY,
) -> list[str]:
    """Copy entries into another open database.

    String macros used by the entries are copied too unless the target
    already defines them.

    Returns:
        Keys under which the entries were stored in ``target``
    """
    selected = [key for key in keys if key in source.entries]
    for abbr in source.strings_used_by(selected):
        target.set_string(abbr, source.strings[abbr], overwrite=False)

    stored: list[str] = []
    for key in selected:
        new_key = target.set_entry(key, source.entries[key], policy, timestamp=True)
        if new_key is None:
            logger.warning(f"Key {key} already exists in {target.name}, not copied")
            continue
        stored.append(new_key)
    logger.info(f"Copied {len(stored)} entries from {source.name} to {target.name}")
    return stored
