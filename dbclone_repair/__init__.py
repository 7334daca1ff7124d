"""Repair database clones whose differencing disks were detached from their host."""

from .__version__ import __version__


__all__ = ["__version__"]
