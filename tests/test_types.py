import json
from datetime import datetime, timedelta, timezone

import pytest

from promapi.types import (
    ActiveTarget,
    Alert,
    AlertingRule,
    AlertManager,
    AlertManagersResult,
    AlertsResult,
    AlertState,
    APIError,
    BuildinfoResult,
    ConfigResult,
    DroppedTarget,
    ErrorType,
    Exemplar,
    ExemplarQueryResult,
    HealthStatus,
    Metadata,
    MetricMetadata,
    MetricType,
    RecordingRule,
    RuleGroup,
    RuleHealth,
    RulesResult,
    RuntimeinfoResult,
    SnapshotResult,
    Stat,
    TargetsResult,
    TSDBResult,
    parse_time,
)

TEST_TIME = datetime(2021, 3, 4, 5, 6, 7, 123456, tzinfo=timezone.utc)
TEST_TIME_TEXT = "2021-03-04T05:06:07.123456Z"
EVAL_TEXT = "2019-01-02T03:04:05.1234567Z"
EVAL_TIME = datetime(2019, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)

ALERT_QUERY = "rate(errors_total[5m]) > 1"
REC_NAME = "job:requests:rate5m"
REC_QUERY = "sum by (job) (rate(requests_total[5m]))"


def test_api_error_str():
    err = APIError(ErrorType.SERVER, "server error: 500", "some body")
    assert str(err) == "server_error: server error: 500"
    assert err.detail == "some body"
    assert str(APIError("client_error", "client error: 404")) == "client_error: client error: 404"


def test_api_error_uses_error_type_value():
    assert str(APIError(ErrorType.EXEC, "failed")) == "execution: failed"
    assert str(APIError(ErrorType.BAD_DATA, "bad")) == "bad_data: bad"


def test_parse_time_nanoseconds_truncated():
    assert parse_time(EVAL_TEXT) == EVAL_TIME


def test_parse_time_offset():
    parsed = parse_time("2020-05-18T17:52:56+02:00")
    assert parsed == datetime(2020, 5, 18, 15, 52, 56, tzinfo=timezone.utc)
    assert parsed.utcoffset() == timedelta(hours=2)


@pytest.mark.parametrize("text", ["2020-05-18 15:52:53Z", "2020-05-18T15:52:53", "2020-13-18T15:52:53Z", "x"])
def test_parse_time_invalid(text):
    with pytest.raises(ValueError):
        parse_time(text)


def test_config_and_snapshot():
    assert ConfigResult.from_json({"yaml": "global: {}"}) == ConfigResult(yaml="global: {}")
    assert SnapshotResult.from_json('{"name": "20200101T000000Z-0000aaaa"}') == SnapshotResult(
        name="20200101T000000Z-0000aaaa"
    )


def test_buildinfo():
    data = {
        "version": "9.9.9",
        "revision": "deadbeef",
        "branch": "main",
        "buildUser": "builder@buildhost",
        "buildDate": "20200101-00:00:00",
        "goVersion": "go1.16",
    }
    assert BuildinfoResult.from_json(data) == BuildinfoResult(
        version="9.9.9",
        revision="deadbeef",
        branch="main",
        build_user="builder@buildhost",
        build_date="20200101-00:00:00",
        go_version="go1.16",
    )


def test_runtimeinfo():
    data = {
        "startTime": EVAL_TEXT,
        "CWD": "/data",
        "reloadConfigSuccess": True,
        "lastConfigTime": TEST_TIME_TEXT,
        "chunkCount": 10,
        "timeSeriesCount": 20,
        "corruptionCount": 0,
        "goroutineCount": 30,
        "GOMAXPROCS": 4,
        "GOGC": "75",
        "GODEBUG": "gctrace=1",
        "storageRetention": "7d",
    }
    assert RuntimeinfoResult.from_json(json.dumps(data)) == RuntimeinfoResult(
        start_time=EVAL_TIME,
        cwd="/data",
        reload_config_success=True,
        last_config_time=TEST_TIME,
        chunk_count=10,
        time_series_count=20,
        corruption_count=0,
        goroutine_count=30,
        gomaxprocs=4,
        gogc="75",
        godebug="gctrace=1",
        storage_retention="7d",
    )


def test_runtimeinfo_rejects_wrong_type():
    with pytest.raises(ValueError):
        RuntimeinfoResult.from_json({"chunkCount": "many"})


def test_alertmanagers():
    data = {
        "activeAlertManagers": [{"url": "http://am-one.test/api"}],
        "droppedAlertManagers": [{"url": "http://am-two.test/api"}],
    }
    assert AlertManagersResult.from_json(data) == AlertManagersResult(
        active=[AlertManager(url="http://am-one.test/api")],
        dropped=[AlertManager(url="http://am-two.test/api")],
    )


def _alert_json():
    return {
        "activeAt": TEST_TIME_TEXT,
        "annotations": {"summary": "Too many errors"},
        "labels": {"alertname": "ManyErrors", "severity": "low"},
        "state": "firing",
        "value": "2e+00",
    }


def _expected_alert():
    return Alert(
        active_at=TEST_TIME,
        annotations={"summary": "Too many errors"},
        labels={"alertname": "ManyErrors", "severity": "low"},
        state=AlertState.FIRING,
        value="2e+00",
    )


def _alerting_rule_json(**extra):
    rule = {
        "alerts": [_alert_json()],
        "annotations": {"summary": "Too many errors"},
        "duration": 300,
        "health": "ok",
        "labels": {"severity": "low"},
        "name": "ManyErrors",
        "query": ALERT_QUERY,
        "type": "alerting",
    }
    rule.update(extra)
    return rule


def _recording_rule_json(**extra):
    rule = {"health": "ok", "name": REC_NAME, "query": REC_QUERY, "type": "recording"}
    rule.update(extra)
    return rule


def _group_json(rules):
    return {"groups": [{"file": "/etc/rules.yml", "interval": 30, "name": "grp", "rules": rules}]}


def test_rules_basic():
    data = _group_json([_alerting_rule_json(), _recording_rule_json()])
    expected = RulesResult(
        groups=[
            RuleGroup(
                name="grp",
                file="/etc/rules.yml",
                interval=30,
                rules=[
                    AlertingRule(
                        alerts=[_expected_alert()],
                        annotations={"summary": "Too many errors"},
                        labels={"severity": "low"},
                        duration=300,
                        health=RuleHealth.GOOD,
                        name="ManyErrors",
                        query=ALERT_QUERY,
                        last_error="",
                    ),
                    RecordingRule(
                        health=RuleHealth.GOOD,
                        name=REC_NAME,
                        query=REC_QUERY,
                        last_error="",
                    ),
                ],
            )
        ]
    )
    assert RulesResult.from_json(data) == expected


def test_rules_with_evaluation_fields():
    data = _group_json(
        [
            _alerting_rule_json(evaluationTime=0.25, lastEvaluation=EVAL_TEXT, state="firing"),
            _recording_rule_json(evaluationTime=0.125, lastEvaluation=EVAL_TEXT),
        ]
    )
    result = RulesResult.from_json(json.dumps(data))
    alerting, recording = result.groups[0].rules
    assert alerting == AlertingRule(
        alerts=[_expected_alert()],
        annotations={"summary": "Too many errors"},
        labels={"severity": "low"},
        duration=300,
        health=RuleHealth.GOOD,
        name="ManyErrors",
        query=ALERT_QUERY,
        evaluation_time=0.25,
        last_evaluation=EVAL_TIME,
        state="firing",
    )
    assert recording == RecordingRule(
        health=RuleHealth.GOOD,
        name=REC_NAME,
        query=REC_QUERY,
        evaluation_time=0.125,
        last_evaluation=EVAL_TIME,
    )


def test_alerting_rule_requires_type():
    with pytest.raises(ValueError, match="type field not present in rule"):
        AlertingRule.from_json({"name": "x"})


def test_alerting_rule_wrong_type():
    with pytest.raises(ValueError, match="expected rule of type alerting but got recording"):
        AlertingRule.from_json({"type": "recording"})


def test_recording_rule_wrong_type():
    with pytest.raises(ValueError, match="expected rule of type recording but got alerting"):
        RecordingRule.from_json({"type": "alerting"})


def test_rule_group_unknown_rule():
    with pytest.raises(ValueError, match="failed to decode JSON into an alerting or recording rule"):
        RuleGroup.from_json({"name": "g", "rules": [{"type": "other"}]})


def test_targets():
    discovered = {"__address__": "host-a:8000", "job": "app"}
    dropped = {"__address__": "host-b:8001", "job": "batch"}
    data = {
        "activeTargets": [
            {
                "discoveredLabels": discovered,
                "labels": {"instance": "host-a:8000", "job": "app"},
                "scrapePool": "app",
                "scrapeUrl": "http://host-a:8000/metrics",
                "globalUrl": "http://host-a:8000/metrics",
                "lastError": "scrape failed",
                "lastScrape": TEST_TIME_TEXT,
                "lastScrapeDuration": 0.0625,
                "health": "up",
            }
        ],
        "droppedTargets": [{"discoveredLabels": dropped}],
    }
    assert TargetsResult.from_json(data) == TargetsResult(
        active=[
            ActiveTarget(
                discovered_labels=discovered,
                labels={"instance": "host-a:8000", "job": "app"},
                scrape_pool="app",
                scrape_url="http://host-a:8000/metrics",
                global_url="http://host-a:8000/metrics",
                last_error="scrape failed",
                last_scrape=TEST_TIME,
                last_scrape_duration=0.0625,
                health=HealthStatus.GOOD,
            )
        ],
        dropped=[DroppedTarget(discovered_labels=dropped)],
    )


def test_unknown_health_kept_as_text():
    assert ActiveTarget.from_json({"health": "weird"}).health == "weird"


def test_invalid_label_name_rejected():
    with pytest.raises(ValueError):
        ActiveTarget.from_json({"labels": {":o)": "smile"}})


def test_targets_metadata():
    item = {"target": {"instance": "host-a:8000", "job": "app"}, "type": "gauge", "help": "Open files.", "unit": ""}
    assert MetricMetadata.from_json(item) == MetricMetadata(
        target={"instance": "host-a:8000", "job": "app"},
        type=MetricType.GAUGE,
        help="Open files.",
        unit="",
    )


def test_metadata():
    data = {"type": "counter", "help": "Requests served.", "unit": "requests"}
    assert Metadata.from_json(data) == Metadata(
        type=MetricType.COUNTER, help="Requests served.", unit="requests"
    )


def test_tsdb():
    data = {
        "seriesCountByMetricName": [{"name": "requests_total", "value": 12}],
        "labelValueCountByLabelName": [{"name": "__name__", "value": 7}],
        "memoryInBytesByLabelName": [{"name": "path", "value": 2048}],
        "seriesCountByLabelValuePair": [{"name": "job=app", "value": 99}],
    }
    assert TSDBResult.from_json(data) == TSDBResult(
        series_count_by_metric_name=[Stat("requests_total", 12)],
        label_value_count_by_label_name=[Stat("__name__", 7)],
        memory_in_bytes_by_label_name=[Stat("path", 2048)],
        series_count_by_label_value_pair=[Stat("job=app", 99)],
    )


def test_stat_rejects_negative():
    with pytest.raises(ValueError):
        Stat.from_json({"name": "x", "value": -1})


def test_exemplar_query_result():
    series = {"__name__": "latency_bucket", "instance": "host-a:8000", "job": "app"}
    text = json.dumps(
        {
            "seriesLabels": series,
            "exemplars": [
                {"labels": {"traceID": "trace-a"}, "value": "0.0025", "timestamp": 1600000000.25},
                {"labels": {"traceID": "trace-b"}, "value": "0.5", "timestamp": 1600000000.25},
            ],
        }
    )
    assert ExemplarQueryResult.from_json(text) == ExemplarQueryResult(
        series_labels=series,
        exemplars=[
            Exemplar(labels={"traceID": "trace-a"}, value=0.0025, timestamp=1600000000250),
            Exemplar(labels={"traceID": "trace-b"}, value=0.5, timestamp=1600000000250),
        ],
    )


def test_exemplar_value_must_be_string():
    with pytest.raises(ValueError):
        Exemplar.from_json({"value": 0.5, "timestamp": 1})


def test_alerts_result():
    result = AlertsResult.from_json({"alerts": [_alert_json()]})
    assert result.alerts == [_expected_alert()]


def test_non_object_rejected():
    with pytest.raises(ValueError):
        ConfigResult.from_json("[1, 2]")