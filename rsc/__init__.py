"""Resilient Self-measuring Controller (RSC).

In-process resilience controller that demonstrates:
 - tension sensing over a sliding window of outcomes
 - state classification (nominal / observing / degraded)
 - primary/fallback execution with automatic failover
 - variance-aware load balancing across a tree of workers

All state is process-local; a restart resets tension to the optimistic default.
"""
