"""
Test suite for the playback engine.

Focus areas:
- Reducer purity and diff semantics
- Cursor monotonicity
- Scheduler pacing, backoff, pause and random access
- Commit store adapters
"""
