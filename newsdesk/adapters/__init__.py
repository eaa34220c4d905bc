"""
Adapters (imperative shell).

- sqlite: SQLite Event Store Adapter and migrator
- memory_store: in-process store for dev and tests
- change_feed: in-process realtime change feed
- event_log: bounded log of accepted engagement events
- time_site: clock bound to the site timezone
"""
