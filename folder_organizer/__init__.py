"""
Folder Organizer
================

Watches folders and sorts their files into category subfolders by
extension, with undo for manual organize runs.

Features:
- Extension-based classification from a configurable category map
- Collision-safe moves (name_1.ext, name_2.ext, ...)
- Debounced, per-folder watch sessions built on watchdog
- Bounded undo history for manual organize runs
"""

__version__ = "0.1.0"
