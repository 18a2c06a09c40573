"""
Placement Drive Platform
Campus recruitment drives with eligibility checks and application tracking.

Architecture:
- PostgreSQL: Structured data (users, students, drives, rosters, applications)
- MongoDB: Notifications and drive chat groups
"""

__version__ = "1.0.0"
