"""
Services package for the guide engine

This package contains the parsing, caching and query layers for schedules
and subtitle cues.
"""
