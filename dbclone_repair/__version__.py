"""Version information for dbclone-repair."""

__version__ = "0.3.0"
