"""
Core ledger logic

This package holds everything that changes a game:
- State machine: the only place a game's status changes
- Managers: game lifecycle (GameManager) and seat money (SeatManager)
- Event log: the append-only history of every ledger change
- Reconciliation / locks: concurrency control and log-vs-cache checks
"""
