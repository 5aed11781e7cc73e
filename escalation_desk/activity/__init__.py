"""
Activity Log Module
===================

Bounded Context for the read-side activity feed.

Responsibilities:
- Merge the current event log with the legacy timeline stream
- Drop events recorded in both streams
- Group identical near-simultaneous actions into bulk entries
- Render display sentences
"""
