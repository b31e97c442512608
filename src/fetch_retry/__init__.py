"""
Fetch Retry: client-side retry middleware for generation APIs.

Wraps outbound HTTP calls to chat/completion services and transparently
re-issues calls that fail at three levels:
- Transport (network errors, per-attempt timeouts)
- HTTP (429 rate limits, 5xx server errors)
- Semantics (2xx responses that are empty, truncated or withheld by moderation)

Architecture: httpx transport wrapper + retry orchestrator + response classifier
"""

__version__ = "0.1.0"
