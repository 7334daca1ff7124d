"""Configuration for dbclone-repair."""
