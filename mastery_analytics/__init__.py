"""
Mastery Progress Analytics.

Stores append-only snapshots of a learner's estimated per-topic and per-task
mastery, rolls them up into course modules and analyses how they move over
time.
"""

__version__ = "1.0.0"
