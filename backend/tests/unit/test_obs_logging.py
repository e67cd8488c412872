import json
import logging

from tripcircle.obs import logging as obs_logging


def _record(**extra):
	record = logging.LogRecord("tripcircle.test", logging.WARNING, __file__, 1, "social.blob_delete_failed", None, None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_emits_json_with_bound_context():
	tokens = obs_logging.bind_context(request_id="req-9", user_id="user-1")
	try:
		payload = json.loads(obs_logging.JSONLogFormatter().format(_record(path="posts/a.jpg")))
	finally:
		obs_logging.reset_context(tokens)

	assert payload["msg"] == "social.blob_delete_failed"
	assert payload["level"] == "warning"
	assert payload["request_id"] == "req-9"
	assert payload["user_id"] == "user-1"
	assert payload["path"] == "posts/a.jpg"
	assert obs_logging.current_request_id() is None


def test_formatter_redacts_sensitive_and_truncates_long_fields():
	payload = json.loads(
		obs_logging.JSONLogFormatter().format(_record(token="abc", content="secret text", reason="x" * 1000))
	)

	assert payload["token"] == "[redacted]"
	assert payload["content"] == "[redacted]"
	assert len(payload["reason"]) < 1000


def test_sampling_filter_keeps_warnings(monkeypatch):
	monkeypatch.setattr(obs_logging.settings, "obs_log_sampling_rate_info", 0.0)
	sampler = obs_logging.InfoSamplingFilter()

	assert sampler.filter(_record()) is True
	info = logging.LogRecord("tripcircle.test", logging.INFO, __file__, 1, "social.group_created", None, None)
	assert sampler.filter(info) is False
