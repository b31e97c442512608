"""
Unit tests for Fetch Retry.

Test individual components in isolation:
- Backoff policy (tracks, ceiling, Retry-After)
- Response validity classifier and text extraction
- Payload mutation strategy
- Retry orchestrator (mocked network primitive and sleep)
- Configuration, notifications, logging, metrics
"""
