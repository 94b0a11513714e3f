import json

import pytest

from fuxi.utils.logging import LogContext, get_logger


def records(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line]


class TestStructuredLogger:
    def test_json_fields_and_binding(self, capsys):
        log = get_logger("fuxi.test.bind").bind(session_id="s1")
        log.info("Participant joined", user_id="u1")
        entry = records(capsys)[0]
        assert entry['level'] == "INFO"
        assert entry['message'] == "Participant joined"
        assert (entry['session_id'], entry['user_id']) == ("s1", "u1")

    def test_operation_context_success(self, capsys):
        log = get_logger("fuxi.test.ok", level="DEBUG")
        with log.operation_context("Coordinator", "simulate", participants=3) as op:
            op.metric("positivity_ratio", 0.5, tags={'session': 's1'})
        entries = records(capsys)
        assert [e.get('operation_status') for e in entries] == ["started", None, "completed"]
        assert entries[1]['metric_value'] == 0.5
        assert entries[2]['context'] == {
            'component': "Coordinator", 'operation': "simulate", 'metadata': {'participants': 3},
        }

    def test_operation_context_failure(self, capsys):
        log = get_logger("fuxi.test.fail")
        with pytest.raises(ValueError):
            with log.operation_context("FeatureStore", "load"):
                raise ValueError("broken catalog")
        entry = records(capsys)[-1]
        assert entry['operation_status'] == "failed"
        assert entry['error_message'] == "broken catalog"
        assert entry['exception']['type'] == "ValueError"

    def test_config_secrets_are_redacted(self, capsys):
        get_logger("fuxi.test.config").log_config({'catalog': {'path': 'a.json'}, 'api_token': 'xyz'})
        config = records(capsys)[0]['config']
        assert config == {'catalog': {'path': 'a.json'}, 'api_token': "***REDACTED***"}

    def test_text_format(self, capsys):
        log = get_logger("fuxi.test.text", fmt="text").with_context(LogContext("Store", "join"))
        log.warning("Session full", session_id="s1")
        line = capsys.readouterr().out
        assert "WARNING" in line
        assert "[Store.join]" in line
        assert "session_id=s1" in line
