"""Config file lookup.

A bare config name is looked up, in order, in:

  1. the current directory;
  2. the per-user config directory (``$XDG_CONFIG_HOME/hrouter``,
     falling back to ``~/.config/hrouter``);
  3. the system directory ``/etc/hrouter``.

A name containing a path separator is used as given.
"""

import os

ETC_DIR = "/etc/hrouter"
DEFAULT_CONFIG = "hrouter.toml"


def user_config_dir() -> str:
    """Return the per-user hrouter config directory."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config")
    return os.path.join(base, "hrouter")


def search_dirs() -> list[str]:
    """Directories searched for a bare config name, highest priority first."""
    return [os.getcwd(), user_config_dir(), ETC_DIR]


def resolve_config(name: str) -> str:
    """Resolve *name* to the absolute path of an existing config file.

    Raises:
        FileNotFoundError: Listing every place that was tried.
    """
    if os.sep in name or (os.altsep and os.altsep in name):
        path = os.path.abspath(name)
        if not os.path.isfile(path):
            raise FileNotFoundError("config file not found: %s" % path)
        return path

    tried = []
    for directory in search_dirs():
        path = os.path.abspath(os.path.join(directory, name))
        if os.path.isfile(path):
            return path
        tried.append(path)

    raise FileNotFoundError(
        "config file '%s' not found; tried %s" % (name, ", ".join(tried))
    )
