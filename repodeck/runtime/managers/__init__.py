"""Business logic for the workspace runtime.

Managers coordinate the record store, git and the filesystem, and raise
domain exceptions (``repodeck.runtime.errors``), never HTTP exceptions --
that translation is the app's responsibility.
"""
