"""
Integration tests.

End-to-end HTTP scenarios through the FastAPI app (httpx over ASGITransport)
with the cache facade wired to the in-memory backing store fake.
"""
