"""
FeedTrak Ingestion Module
=========================

Feed discovery and parsing components.

This module handles:
- Locating feeds behind site and YouTube URLs
- Normalizing RSS 2.0 and Atom into one entry shape
- Thumbnail extraction
- OPML subscription import
"""
