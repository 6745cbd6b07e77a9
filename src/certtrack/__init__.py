"""
Certificate lifecycle service.

Tracks issuance and expiry of course-completion certificates, emails
reminders on a schedule and revokes course access on expiry.
"""

__version__ = "0.1.0"
