"""
Program guide and subtitle timing engine.

Parses XMLTV schedules and subtitle tracks into time-ordered interval data,
caches schedules with an age limit and answers point-in-time queries.
"""

__version__ = "0.1.0"
