"""
Service layer

Calculation and read-side logic, no status transitions:
- ledger_service: money rules for a seat and a pot (pure)
- passcode_service: join code generation
- state_service: state_version change feed
- aggregation_service: leaderboards and table stats
- history_service: per-identity history and stats
"""
