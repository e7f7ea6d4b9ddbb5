import json
import logging

from app.config.logging import JsonFormatter


class TestJsonFormatter:
    def test_includes_context_fields(self):
        record = logging.LogRecord("app.services.search", logging.WARNING, __file__, 1, "cache down", None, None)
        record.cache_key = "search:abc"
        record.fallback = True

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["message"] == "cache down"
        assert payload["cache_key"] == "search:abc"
        assert payload["fallback"] is True
        assert "user_id" not in payload
