"""
ReportsDAY Package.

Call-center KPI report service: computes daily KPIs from a PBX metrics API,
compares them with the recent baseline, delivers the report to a messaging
channel on a schedule and streams progress to live dashboard viewers.

Subpackages:
    - api: FastAPI route handlers and the WebSocket endpoint
    - clients: Metrics API and messaging clients
    - core: Configuration, time helpers, runtime container, dependencies
    - models: Pydantic schemas and enums
    - services: Ingestion, KPI aggregation, history, day cache, dispatch, broadcast
    - jobs: Recurring triggers and the report scheduler
"""

__version__ = "1.0.0"
