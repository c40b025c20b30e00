"""
TubePulse Test Suite.

- unit/: Queue, normalization, VPH, quota tracker and stores, retry, monitoring
- integration/: Quota gateway pipeline, upstream client over a mock
  transport, FastAPI app
- conftest.py: Raw upstream records shared by both suites

Run tests with: pytest
Run integration tests only: pytest tests/integration
"""
