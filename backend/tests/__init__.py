"""
Pytest test suite for the BookNest backend.

Test categories:
- Unit tests: pure helpers, guards and models
- Integration tests: services against in-memory SQLite
- API tests: full FastAPI app over httpx ASGITransport
"""
