"""
Bracket generation engine for padel tournaments.
"""
