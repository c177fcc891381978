"""Result types of the HTTP API and the error it reports."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Union

from .model import _labels, _load, _parse_sample_value, parse_timestamp

_RFC3339_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})"
)


class _StrEnum(str, Enum):
    def __str__(self) -> str:
        return str(self.value)


class AlertState(_StrEnum):
    """State of an alert."""

    FIRING = "firing"
    INACTIVE = "inactive"
    PENDING = "pending"


class ErrorType(_StrEnum):
    """Kinds of error the API reports."""

    BAD_DATA = "bad_data"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    EXEC = "execution"
    BAD_RESPONSE = "bad_response"
    SERVER = "server_error"
    CLIENT = "client_error"


class HealthStatus(_StrEnum):
    """Health of a scrape target."""

    GOOD = "up"
    UNKNOWN = "unknown"
    BAD = "down"


class RuleType(_StrEnum):
    """Type of a rule."""

    RECORDING = "recording"
    ALERTING = "alerting"


class RuleHealth(_StrEnum):
    """Health of a rule."""

    GOOD = "ok"
    UNKNOWN = "unknown"
    BAD = "err"


class MetricType(_StrEnum):
    """Type of a metric as given in its metadata."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    GAUGE_HISTOGRAM = "gaugehistogram"
    SUMMARY = "summary"
    INFO = "info"
    STATESET = "stateset"
    UNKNOWN = "unknown"


class APIError(Exception):
    """An error reported by the API or found in its response."""

    def __init__(self, type: ErrorType | str, msg: str, detail: str = "") -> None:
        super().__init__(type, msg, detail)
        self.type = type
        self.msg = msg
        self.detail = detail

    def __str__(self) -> str:
        kind = getattr(self.type, "value", self.type)
        return f"{kind}: {self.msg}"


@dataclass(frozen=True)
class Range:
    """A time range sliced into steps."""

    start: datetime
    end: datetime
    step: timedelta


def parse_time(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; digits below microseconds are dropped."""
    match = _RFC3339_RE.fullmatch(text) if isinstance(text, str) else None
    if match is None:
        raise ValueError(f"invalid RFC 3339 time {text!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    micro = int(((match.group(7) or "") + "000000")[:6])
    zone = match.group(8)
    try:
        if zone == "Z":
            tz = timezone.utc
        else:
            sign = 1 if zone[0] == "+" else -1
            tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
        return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)
    except ValueError as exc:
        raise ValueError(f"invalid RFC 3339 time {text!r}: {exc}") from exc


def _object(data: Any, what: str) -> Mapping[str, Any]:
    data = _load(data)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _str(obj: Mapping[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _float(obj: Mapping[str, Any], key: str) -> float:
    value = obj.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


def _int(obj: Mapping[str, Any], key: str, *, unsigned: bool = False) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    if unsigned and value < 0:
        raise ValueError(f"field {key!r} must not be negative")
    return value


def _bool(obj: Mapping[str, Any], key: str) -> bool:
    value = obj.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


def _time(obj: Mapping[str, Any], key: str) -> datetime | None:
    value = obj.get(key)
    return None if value is None else parse_time(value)


def _list(obj: Mapping[str, Any], key: str) -> list[Any]:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise ValueError(f"field {key!r} must be an array")
    return list(value)


def _str_map(obj: Mapping[str, Any], key: str) -> dict[str, str]:
    value = obj.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be an object")
    result: dict[str, str] = {}
    for name, item in value.items():
        if not isinstance(item, str):
            raise ValueError(f"value of {name!r} in {key!r} must be a string")
        result[str(name)] = item
    return result


def _enum(enum_cls: type[_StrEnum], obj: Mapping[str, Any], key: str) -> Any:
    text = _str(obj, key)
    try:
        return enum_cls(text)
    except ValueError:
        return text


def _check_rule_type(obj: Mapping[str, Any], expected: RuleType) -> None:
    kind = _str(obj, "type")
    if not kind:
        raise ValueError("type field not present in rule")
    if kind != expected.value:
        raise ValueError(f"expected rule of type {expected.value} but got {kind}")


@dataclass
class Alert:
    """An active alert."""

    active_at: datetime | None = None
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    state: AlertState | str = ""
    value: str = ""

    @classmethod
    def from_json(cls, data: Any) -> Alert:
        obj = _object(data, "alert")
        return cls(
            active_at=_time(obj, "activeAt"),
            annotations=_labels(obj.get("annotations")),
            labels=_labels(obj.get("labels")),
            state=_enum(AlertState, obj, "state"),
            value=_str(obj, "value"),
        )


@dataclass
class AlertsResult:
    """Result of the alerts endpoint."""

    alerts: list[Alert] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> AlertsResult:
        obj = _object(data, "alerts result")
        return cls([Alert.from_json(a) for a in _list(obj, "alerts")])


@dataclass
class AlertManager:
    """A configured Alertmanager."""

    url: str = ""

    @classmethod
    def from_json(cls, data: Any) -> AlertManager:
        return cls(_str(_object(data, "alertmanager"), "url"))


@dataclass
class AlertManagersResult:
    """Result of the alertmanagers endpoint."""

    active: list[AlertManager] = field(default_factory=list)
    dropped: list[AlertManager] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> AlertManagersResult:
        obj = _object(data, "alertmanagers result")
        return cls(
            active=[AlertManager.from_json(a) for a in _list(obj, "activeAlertManagers")],
            dropped=[AlertManager.from_json(a) for a in _list(obj, "droppedAlertManagers")],
        )


@dataclass
class ConfigResult:
    """Result of the config endpoint."""

    yaml: str = ""

    @classmethod
    def from_json(cls, data: Any) -> ConfigResult:
        return cls(_str(_object(data, "config result"), "yaml"))


@dataclass
class BuildinfoResult:
    """Result of the buildinfo endpoint."""

    version: str = ""
    revision: str = ""
    branch: str = ""
    build_user: str = ""
    build_date: str = ""
    go_version: str = ""

    @classmethod
    def from_json(cls, data: Any) -> BuildinfoResult:
        obj = _object(data, "buildinfo result")
        return cls(
            version=_str(obj, "version"),
            revision=_str(obj, "revision"),
            branch=_str(obj, "branch"),
            build_user=_str(obj, "buildUser"),
            build_date=_str(obj, "buildDate"),
            go_version=_str(obj, "goVersion"),
        )


@dataclass
class RuntimeinfoResult:
    """Result of the runtimeinfo endpoint."""

    start_time: datetime | None = None
    cwd: str = ""
    reload_config_success: bool = False
    last_config_time: datetime | None = None
    chunk_count: int = 0
    time_series_count: int = 0
    corruption_count: int = 0
    goroutine_count: int = 0
    gomaxprocs: int = 0
    gogc: str = ""
    godebug: str = ""
    storage_retention: str = ""

    @classmethod
    def from_json(cls, data: Any) -> RuntimeinfoResult:
        obj = _object(data, "runtimeinfo result")
        return cls(
            start_time=_time(obj, "startTime"),
            cwd=_str(obj, "CWD"),
            reload_config_success=_bool(obj, "reloadConfigSuccess"),
            last_config_time=_time(obj, "lastConfigTime"),
            chunk_count=_int(obj, "chunkCount"),
            time_series_count=_int(obj, "timeSeriesCount"),
            corruption_count=_int(obj, "corruptionCount"),
            goroutine_count=_int(obj, "goroutineCount"),
            gomaxprocs=_int(obj, "GOMAXPROCS"),
            gogc=_str(obj, "GOGC"),
            godebug=_str(obj, "GODEBUG"),
            storage_retention=_str(obj, "storageRetention"),
        )


@dataclass
class SnapshotResult:
    """Result of the snapshot endpoint."""

    name: str = ""

    @classmethod
    def from_json(cls, data: Any) -> SnapshotResult:
        return cls(_str(_object(data, "snapshot result"), "name"))


@dataclass
class AlertingRule:
    """An alerting rule."""

    name: str = ""
    query: str = ""
    duration: float = 0.0
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)
    health: RuleHealth | str = ""
    last_error: str = ""
    evaluation_time: float = 0.0
    last_evaluation: datetime | None = None
    state: str = ""

    @classmethod
    def from_json(cls, data: Any) -> AlertingRule:
        obj = _object(data, "rule")
        _check_rule_type(obj, RuleType.ALERTING)
        return cls(
            name=_str(obj, "name"),
            query=_str(obj, "query"),
            duration=_float(obj, "duration"),
            labels=_labels(obj.get("labels")),
            annotations=_labels(obj.get("annotations")),
            alerts=[Alert.from_json(a) for a in _list(obj, "alerts")],
            health=_enum(RuleHealth, obj, "health"),
            last_error=_str(obj, "lastError"),
            evaluation_time=_float(obj, "evaluationTime"),
            last_evaluation=_time(obj, "lastEvaluation"),
            state=_str(obj, "state"),
        )


@dataclass
class RecordingRule:
    """A recording rule."""

    name: str = ""
    query: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    health: RuleHealth | str = ""
    last_error: str = ""
    evaluation_time: float = 0.0
    last_evaluation: datetime | None = None

    @classmethod
    def from_json(cls, data: Any) -> RecordingRule:
        obj = _object(data, "rule")
        _check_rule_type(obj, RuleType.RECORDING)
        return cls(
            name=_str(obj, "name"),
            query=_str(obj, "query"),
            labels=_labels(obj.get("labels")),
            health=_enum(RuleHealth, obj, "health"),
            last_error=_str(obj, "lastError"),
            evaluation_time=_float(obj, "evaluationTime"),
            last_evaluation=_time(obj, "lastEvaluation"),
        )


Rule = Union[AlertingRule, RecordingRule]


@dataclass
class RuleGroup:
    """A group of rules, kept in the order the server returned them."""

    name: str = ""
    file: str = ""
    interval: float = 0.0
    rules: list[Rule] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> RuleGroup:
        obj = _object(data, "rule group")
        rules: list[Rule] = []
        for raw in _list(obj, "rules"):
            for rule_cls in (AlertingRule, RecordingRule):
                try:
                    rules.append(rule_cls.from_json(raw))
                    break
                except ValueError:
                    continue
            else:
                raise ValueError("failed to decode JSON into an alerting or recording rule")
        return cls(
            name=_str(obj, "name"),
            file=_str(obj, "file"),
            interval=_float(obj, "interval"),
            rules=rules,
        )


@dataclass
class RulesResult:
    """Result of the rules endpoint."""

    groups: list[RuleGroup] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> RulesResult:
        obj = _object(data, "rules result")
        return cls([RuleGroup.from_json(g) for g in _list(obj, "groups")])


@dataclass
class ActiveTarget:
    """An active scrape target."""

    discovered_labels: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    scrape_pool: str = ""
    scrape_url: str = ""
    global_url: str = ""
    last_error: str = ""
    last_scrape: datetime | None = None
    last_scrape_duration: float = 0.0
    health: HealthStatus | str = ""

    @classmethod
    def from_json(cls, data: Any) -> ActiveTarget:
        obj = _object(data, "active target")
        return cls(
            discovered_labels=_str_map(obj, "discoveredLabels"),
            labels=_labels(obj.get("labels")),
            scrape_pool=_str(obj, "scrapePool"),
            scrape_url=_str(obj, "scrapeUrl"),
            global_url=_str(obj, "globalUrl"),
            last_error=_str(obj, "lastError"),
            last_scrape=_time(obj, "lastScrape"),
            last_scrape_duration=_float(obj, "lastScrapeDuration"),
            health=_enum(HealthStatus, obj, "health"),
        )


@dataclass
class DroppedTarget:
    """A dropped scrape target."""

    discovered_labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> DroppedTarget:
        return cls(_str_map(_object(data, "dropped target"), "discoveredLabels"))


@dataclass
class TargetsResult:
    """Result of the targets endpoint."""

    active: list[ActiveTarget] = field(default_factory=list)
    dropped: list[DroppedTarget] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> TargetsResult:
        obj = _object(data, "targets result")
        return cls(
            active=[ActiveTarget.from_json(t) for t in _list(obj, "activeTargets")],
            dropped=[DroppedTarget.from_json(t) for t in _list(obj, "droppedTargets")],
        )


@dataclass
class MetricMetadata:
    """Metadata of a metric together with its scrape target."""

    target: dict[str, str] = field(default_factory=dict)
    metric: str = ""
    type: MetricType | str = ""
    help: str = ""
    unit: str = ""

    @classmethod
    def from_json(cls, data: Any) -> MetricMetadata:
        obj = _object(data, "metric metadata")
        return cls(
            target=_str_map(obj, "target"),
            metric=_str(obj, "metric"),
            type=_enum(MetricType, obj, "type"),
            help=_str(obj, "help"),
            unit=_str(obj, "unit"),
        )


@dataclass
class Metadata:
    """Metadata of a metric."""

    type: MetricType | str = ""
    help: str = ""
    unit: str = ""

    @classmethod
    def from_json(cls, data: Any) -> Metadata:
        obj = _object(data, "metadata")
        return cls(
            type=_enum(MetricType, obj, "type"),
            help=_str(obj, "help"),
            unit=_str(obj, "unit"),
        )


@dataclass
class Stat:
    """A named statistic value."""

    name: str = ""
    value: int = 0

    @classmethod
    def from_json(cls, data: Any) -> Stat:
        obj = _object(data, "stat")
        return cls(name=_str(obj, "name"), value=_int(obj, "value", unsigned=True))


@dataclass
class TSDBResult:
    """Result of the tsdb status endpoint."""

    series_count_by_metric_name: list[Stat] = field(default_factory=list)
    label_value_count_by_label_name: list[Stat] = field(default_factory=list)
    memory_in_bytes_by_label_name: list[Stat] = field(default_factory=list)
    series_count_by_label_value_pair: list[Stat] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> TSDBResult:
        obj = _object(data, "tsdb result")

        def stats(key: str) -> list[Stat]:
            return [Stat.from_json(s) for s in _list(obj, key)]

        return cls(
            series_count_by_metric_name=stats("seriesCountByMetricName"),
            label_value_count_by_label_name=stats("labelValueCountByLabelName"),
            memory_in_bytes_by_label_name=stats("memoryInBytesByLabelName"),
            series_count_by_label_value_pair=stats("seriesCountByLabelValuePair"),
        )


@dataclass
class Exemplar:
    """Extra information attached to a series at one timestamp (milliseconds)."""

    labels: dict[str, str] = field(default_factory=dict)
    value: float = 0.0
    timestamp: int = 0

    @classmethod
    def from_json(cls, data: Any) -> Exemplar:
        obj = _object(data, "exemplar")
        raw_value = obj.get("value")
        raw_ts = obj.get("timestamp")
        return cls(
            labels=_labels(obj.get("labels")),
            value=0.0 if raw_value is None else _parse_sample_value(raw_value),
            timestamp=0 if raw_ts is None else parse_timestamp(raw_ts),
        )


@dataclass
class ExemplarQueryResult:
    """Exemplars of one series."""

    series_labels: dict[str, str] = field(default_factory=dict)
    exemplars: list[Exemplar] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> ExemplarQueryResult:
        obj = _object(data, "exemplar query result")
        return cls(
            series_labels=_labels(obj.get("seriesLabels")),
            exemplars=[Exemplar.from_json(e) for e in _list(obj, "exemplars")],
        )