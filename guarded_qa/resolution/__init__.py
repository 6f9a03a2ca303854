"""
Entity Resolution Module.

Maps a free-text question to the person, store or market it is about and
the reporting period it covers.
"""

from guarded_qa.resolution.directory import EntityDirectory, InMemoryDirectory
from guarded_qa.resolution.entity_resolver import EntityResolver, levenshtein_distance
from guarded_qa.resolution.period import extract_period

__all__ = [
    "EntityDirectory",
    "InMemoryDirectory",
    "EntityResolver",
    "levenshtein_distance",
    "extract_period",
]
