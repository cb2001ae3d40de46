"""
finwatch - Personal Finance Core

The non-visual core of a personal-finance tracker: a resilient caching
client for the remote document store holding transactions, goals and
categories, and a pipeline that turns upcoming and overdue bills into
reminders.

DESIGN PRINCIPLES:
1. Reads degrade, they don't fail
2. Writes fail loudly and invalidate what they touch
3. Every component is constructed explicitly, nothing hides behind a global
4. Preferences are passed in, never read from ambient storage
"""

__version__ = "1.0.0"
__author__ = "finwatch Team"
