# backend/mentorline/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, calls, group_sessions

__all__ = [
    "availability",
    "calls",
    "group_sessions",
]
