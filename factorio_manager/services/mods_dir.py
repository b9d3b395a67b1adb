import os

MOD_ARCHIVE_EXTENSION = ".zip"


def is_mod_present(mod_name: str, mods_dir: str) -> bool:
    """Return True when ``mods_dir`` holds a ``<mod_name>_*.zip`` archive.

    The match is case-insensitive and does not look at versions. Raises
    ``OSError`` when the directory cannot be scanned.
    """
    prefix = f"{mod_name.lower()}_"
    with os.scandir(mods_dir) as entries:
        for entry in entries:
            if entry.is_dir():
                continue
            filename = entry.name.lower()
            if not filename.endswith(MOD_ARCHIVE_EXTENSION):
                continue
            if filename.startswith(prefix):
                return True
    return False
