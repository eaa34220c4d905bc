"""
newsdesk - engagement tracking and comment moderation for the news site.

Covers article-view dedup, advertisement lifecycle and impression/click
accounting, comment moderation, dashboard rollups, and realtime refresh.
"""

__version__ = "0.1.0"
