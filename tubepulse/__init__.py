"""
TubePulse - video analytics backend.

This package contains the core modules for the TubePulse service:
- normalization: Mapping of schema-unstable upstream records onto Video / ChannelInfo
- analytics: Derived metrics (decay-weighted views per hour)
- core: Request queue, retry helper, background tasks, exceptions, container
- quota: Per-identity daily quota tracker and its stores
- upstream: Async client for the upstream video API
- services: Quota-gated call pipeline
- monitoring: Prometheus metrics and queue health
- api: FastAPI application with health endpoints
- config: Pydantic settings
"""

__version__ = "0.1.0"
