"""
Delayed job processing.

This package provides a database-backed job queue with:
- Atomic claiming so a job is never run by two workers at once
- Registry-based handlers selected by queue name
- Exponential backoff for recoverable failures, terminal completion otherwise
- Immediate dispatch on enqueue with a periodic poller as a safety net
"""
