"""Domain services: projects, students, contracts, saved lists, lookup options.

Each mutating function runs in one transaction via ``db.transaction`` and
raises the typed errors from ``projectboard.errors``.
"""
