"""
Strongroom - project folder storage.

Gates:
    DiskGate     project folder paths, scaffolding, descriptors, trees
    WatchGate    per-project filesystem watches and change fan-out
    RecycleGate  recycle bin with retention and size-capped cleanup

Shared infrastructure (logging, errors, database) lives in strongroom.shared,
settings in strongroom.Config.
"""

__version__ = "0.1.0"
