"""
Finance Schedule Engine - Source Package

Tracks loans, income sources and recurring expenses, turns each of them
into a dated schedule of occurrences and keeps that schedule, the
dashboard and the reminders consistent as the user edits and settles.

DESIGN PRINCIPLES:
1. Settled history is never rewritten
2. One temporal window policy for every upcoming view
3. A mutation is committed entirely or not at all
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Schedule Engine Team"
