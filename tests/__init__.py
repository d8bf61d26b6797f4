"""
CreatorPulse Test Suite.

- unit/: Normalizers, stores, queue, clients, services, triggers and API
- integration/: Feed refresh end to end through the queue workers
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
Run only unit tests: pytest tests/unit
"""
