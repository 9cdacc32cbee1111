"""
Build-time data pipeline for a browsable, searchable settings catalog.

Turns a raw export of device-management setting definitions and their
categories into a deduplicated category tree, grouped per-category
setting lists, a ranked search index and a day-over-day changelog.
"""

__version__ = "0.1.0"
