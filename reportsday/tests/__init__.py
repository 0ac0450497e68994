'''
ReportsDAY Test Suite

Test Modules:
-------------
- test_ingestion.py: Call normalization and single-pass classification
- test_metrics_client.py: URL/headers of the metrics API, fail-closed errors
- test_messaging.py: WhatsApp gateway and Slack webhook clients
- test_aggregator.py: KPI snapshots from aggregate and call-list answers
- test_history.py: Rolling baseline, means, level classification
- test_cache.py: Day cache files, sliding TTL, lazy expiry
- test_broadcaster.py: Per-viewer ordering and pruning
- test_dispatcher.py: Report payload and the follow-up comparison message
- test_scheduler.py: Triggers, next run, execution history, manual triggers
- test_api.py: HTTP routes, webhook ingestion and the WebSocket endpoint

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

See conftest.py for shared fixtures and test doubles.
'''

__all__ = []
