"""Background sync infrastructure for Skywatch.

Modules:
    base      — Source descriptors, fetch results, cache entries
    retry     — Retry-with-backoff shared by every upstream call
    locks     — Distributed lock coordinators (Postgres advisory, Redis)
    store     — Cache-aside store (Redis in front of PostgreSQL)
    task      — Per-source acquire/fetch/persist/release/sleep loop
    scheduler — Starts, stops and queries the per-source tasks
    sources   — sources.yaml loading, validation and wiring
"""
