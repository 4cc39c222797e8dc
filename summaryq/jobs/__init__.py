"""
Durable summary job queue.

This package provides an at-least-once background job engine with:
- A relational table acting as both work queue and state machine
- SELECT FOR UPDATE SKIP LOCKED claiming shared by any number of workers
- Idempotent enqueue via deterministic request keys
- Retry with escalating backoff, dead-lettering and stale-lock recovery
- A content-addressed summary cache consulted before enqueueing
"""
