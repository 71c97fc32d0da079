from __future__ import annotations

import json
import logging

from newsdesk.core.logging import JsonFormatter, KeyValueFormatter


def _record(**extra) -> logging.LogRecord:  # noqa: ANN003
    record = logging.LogRecord("newsdesk.workers.delivery", logging.WARNING, __file__, 1, "retrying", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    payload = json.loads(JsonFormatter().format(_record(issue_id="i-1", n_retries=2)))
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "newsdesk.workers.delivery"
    assert payload["message"] == "retrying"
    assert payload["issue_id"] == "i-1"
    assert payload["n_retries"] == 2


def test_key_value_formatter_appends_sorted_extras() -> None:
    line = KeyValueFormatter("%(levelname)s %(message)s").format(_record(recipient="a@example.com", issue_id="i-1"))
    assert line == "WARNING retrying issue_id=i-1 recipient=a@example.com"
