"""
hostguard CLI - transactional host changes with checkpoint rollback

Commands:
- hostguard tx list/show/rollback/replay/verify/cleanup - Transactions
- hostguard checkpoint create/list/show/restore/delete - Restore points
- hostguard backup capture/list/restore/prune - Single-file backups
- hostguard lock status - Host lock
"""
