import pytest
from unittest.mock import MagicMock, patch


@pytest.fixture(autouse=True)
def fake_redis():
    """Every Redis touch point goes to one MagicMock; no server needed."""
    r = MagicMock()
    r.get.return_value = None
    r.lrange.return_value = []
    with patch("readiness.observability.metrics.get_redis", return_value=r), \
         patch("readiness.store.flag_store.get_redis", return_value=r), \
         patch("readiness.proximity.detector.get_redis", return_value=r):
        yield r
