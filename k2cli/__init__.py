"""
k2: a small command-line tool for inspecting Kafka clusters.

Subcommands:
- list   → topic / partition metadata
- read   → bounded replay of a time or offset window from one topic
- tail   → follow one or more topics live
- write  → publish a single record
"""

__version__ = "1.0.0"
