"""Template resolution and reference tracking.

- **resolver**: Tiered lookup (explicit -> workspace namespace -> shared namespace)
- **defaults**: Template defaults merged into unset workspace fields
- **tracker**: Reverse index + protection finalizer on templates (conflict-retried)
- **retry**: Optimistic-concurrency retry loop with jittered backoff
"""
