"""
Hostguard - transactional checkpoint and rollback for host administration.

Groups filesystem, package and command operations into transactions that
either commit as a unit or roll the host back to its pre-transaction state.
"""

__version__ = "0.1.0"
