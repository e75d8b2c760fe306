"""
Integration tests: the wired facility, concurrent allocation and the
Redis/MongoDB adapters (driven through mocked clients).
"""
