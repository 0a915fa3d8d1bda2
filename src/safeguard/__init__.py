"""
Safeguard: keeps protected directories and database tables in a trusted state.

Runs a set of independent reconcilers on fixed intervals:
- Directory mirroring from a trusted source tree
- Pruning of a table down to its sentinel row
- Restoration of a table to the snapshot taken at start-up
"""

__version__ = "0.1.0"
