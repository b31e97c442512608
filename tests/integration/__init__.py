"""
Integration tests for Fetch Retry.

Drive a real httpx.AsyncClient through RetryTransport against a scripted
httpx.MockTransport (marked with @pytest.mark.integration).
"""
