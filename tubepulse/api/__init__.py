"""
TubePulse FastAPI Application.

- main: application factory and exception handlers
- routes/: endpoint definitions
- models: Pydantic response models
- dependencies: FastAPI dependency providers

API Structure:
- /health, /health/live, /health/ready - queue health and probes
- /metrics - Prometheus metrics

Example:
    uvicorn tubepulse.api.main:create_app --factory --reload
"""
