"""
Graph Migrate - export and import of typed property graph stores.

Exports the schema and instance data of a source store into a directory of
text files and rebuilds them in a target store, remapping instance ids and
verifying per-category instance counts afterwards.
"""

__version__ = "0.1.0"
