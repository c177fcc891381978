"""Bindings for the v1 HTTP API of a Prometheus server."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Union
from urllib.parse import urlencode, urlsplit, urlunsplit

from .client import Client, Response
from .model import Value, _labels, decode_value
from .types import (
    AlertManagersResult,
    AlertsResult,
    APIError,
    BuildinfoResult,
    ConfigResult,
    ErrorType,
    ExemplarQueryResult,
    Metadata,
    MetricMetadata,
    Range,
    RulesResult,
    RuntimeinfoResult,
    SnapshotResult,
    TargetsResult,
    TSDBResult,
)

_API_PREFIX = "/api/v1"

_EP_ALERTS = _API_PREFIX + "/alerts"
_EP_ALERT_MANAGERS = _API_PREFIX + "/alertmanagers"
_EP_QUERY = _API_PREFIX + "/query"
_EP_QUERY_RANGE = _API_PREFIX + "/query_range"
_EP_QUERY_EXEMPLARS = _API_PREFIX + "/query_exemplars"
_EP_LABELS = _API_PREFIX + "/labels"
_EP_LABEL_VALUES = _API_PREFIX + "/label/:name/values"
_EP_SERIES = _API_PREFIX + "/series"
_EP_TARGETS = _API_PREFIX + "/targets"
_EP_TARGETS_METADATA = _API_PREFIX + "/targets/metadata"
_EP_METADATA = _API_PREFIX + "/metadata"
_EP_RULES = _API_PREFIX + "/rules"
_EP_SNAPSHOT = _API_PREFIX + "/admin/tsdb/snapshot"
_EP_DELETE_SERIES = _API_PREFIX + "/admin/tsdb/delete_series"
_EP_CLEAN_TOMBSTONES = _API_PREFIX + "/admin/tsdb/clean_tombstones"
_EP_CONFIG = _API_PREFIX + "/status/config"
_EP_FLAGS = _API_PREFIX + "/status/flags"
_EP_BUILDINFO = _API_PREFIX + "/status/buildinfo"
_EP_RUNTIMEINFO = _API_PREFIX + "/status/runtimeinfo"
_EP_TSDB = _API_PREFIX + "/status/tsdb"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FALLBACK_CODES = (405, 501)
_API_ERROR_CODES = (400, 422)

Warnings = Optional[list]
Args = Union[Mapping[str, Union[str, Sequence[str]]], Sequence[tuple[str, str]], None]


def _format_float(number: float) -> str:
    text = format(Decimal(repr(float(number))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_time(t: datetime) -> str:
    """Render a point in time as Unix seconds with a fractional part."""
    if t.tzinfo is None:
        t = t.astimezone()
    delta = t - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return _format_float(float(seconds) + delta.microseconds * 1000 / 1e9)


def _pairs(args: Args) -> list[tuple[str, str]]:
    if args is None:
        return []
    items = args.items() if isinstance(args, Mapping) else args
    pairs: list[tuple[str, str]] = []
    for key, value in items:
        if isinstance(value, str):
            pairs.append((key, value))
        else:
            pairs.extend((key, v) for v in value)
    return pairs


def _encode(args: Args) -> str:
    return urlencode(sorted(_pairs(args), key=lambda kv: kv[0]))


def _with_query(url: str, query: str) -> str:
    return urlunsplit(urlsplit(url)._replace(query=query))


def _error_type_and_msg(code: int) -> tuple[ErrorType, str]:
    if code // 100 == 4:
        return ErrorType.CLIENT, f"client error: {code}"
    if code // 100 == 5:
        return ErrorType.SERVER, f"server error: {code}"
    return ErrorType.BAD_RESPONSE, f"bad response code {code}"


def _error_type(text: str) -> ErrorType | str:
    try:
        return ErrorType(text)
    except ValueError:
        return text


def _sequence(data: Any, what: str) -> list[Any]:
    if data is None:
        return []
    if not isinstance(data, Sequence) or isinstance(data, (str, bytes, bytearray)):
        raise ValueError(f"{what} must be an array")
    return list(data)


def _strings(data: Any, what: str) -> list[str]:
    items = _sequence(data, what)
    if not all(isinstance(item, str) for item in items):
        raise ValueError(f"{what} must hold only strings")
    return items


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object")
    return data


def _envelope(payload: Any) -> tuple[str, Any, str, str, list[str] | None]:
    obj = _mapping(payload, "response body")

    def text(key: str) -> str:
        value = obj.get(key)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError(f"field {key!r} must be a string")
        return value

    raw_warnings = obj.get("warnings")
    warnings = None if raw_warnings is None else _strings(raw_warnings, "warnings")
    return text("status"), obj.get("data"), text("errorType"), text("error"), warnings


class ApiClient:
    """Wraps a client and unpacks the envelope of API responses.

    Requests return ``(response, data, warnings)`` where ``data`` is the
    decoded ``data`` field. Errors reported by the API raise ``APIError``,
    which then carries the response warnings in its ``warnings`` attribute.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    def url(self, ep: str, args: Mapping[str, str] | None = None) -> str:
        """Return the URL of an endpoint."""
        return self._client.url(ep, args)

    def do(
        self,
        method: str,
        url: str,
        *,
        data: str | bytes | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | tuple[float, float | None] | None = None,
    ) -> tuple[Response, Any, list[str] | None]:
        """Send a request and unpack the API response."""
        resp = self._client.do(method, url, data=data, headers=headers, timeout=timeout)
        return self._interpret(resp)

    def do_get_fallback(
        self,
        url: str,
        args: Args,
        timeout: float | tuple[float, float | None] | None = None,
    ) -> tuple[Response, Any, list[str] | None]:
        """POST ``args`` as a form; repeat as GET if the server answers 405 or 501."""
        encoded = _encode(args)
        resp = self._client.do(
            "POST",
            url,
            data=encoded,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=timeout,
        )
        if resp.status_code in _FALLBACK_CODES:
            resp = self._client.do("GET", _with_query(url, encoded), timeout=timeout)
        return self._interpret(resp)

    @staticmethod
    def _interpret(resp: Response) -> tuple[Response, Any, list[str] | None]:
        code = resp.status_code
        if code // 100 != 2 and code not in _API_ERROR_CODES:
            kind, msg = _error_type_and_msg(code)
            raise APIError(kind, msg, resp.body.decode("utf-8", "replace"))

        status, data, error_type, error_msg, warnings = "", None, "", "", None
        if code != 204:
            try:
                payload = json.loads(resp.body, parse_float=Decimal)
                status, data, error_type, error_msg, warnings = _envelope(payload)
            except ValueError as exc:
                raise APIError(ErrorType.BAD_RESPONSE, str(exc)) from exc

        error: APIError | None = None
        if code in _API_ERROR_CODES and status == "success":
            error = APIError(ErrorType.BAD_RESPONSE, "inconsistent body for response code")
        if status == "error":
            error = APIError(_error_type(error_type), error_msg)
        if error is not None:
            error.warnings = warnings  # type: ignore[attr-defined]
            raise error
        return resp, data, warnings


class API:
    """Methods for the endpoints of the v1 API. Safe to share between threads."""

    def __init__(self, client: Client | ApiClient) -> None:
        self._client = client if isinstance(client, ApiClient) else ApiClient(client)

    def _call(
        self,
        method: str,
        ep: str,
        params: Args = None,
        ep_args: Mapping[str, str] | None = None,
    ) -> tuple[Any, list[str] | None]:
        url = self._client.url(ep, ep_args)
        query = _encode(params)
        if query:
            url = _with_query(url, query)
        _, data, warnings = self._client.do(method, url)
        return data, warnings

    def alerts(self) -> AlertsResult:
        """Return all active alerts."""
        data, _ = self._call("GET", _EP_ALERTS)
        return AlertsResult.from_json(data)

    def alert_managers(self) -> AlertManagersResult:
        """Return the state of Alertmanager discovery."""
        data, _ = self._call("GET", _EP_ALERT_MANAGERS)
        return AlertManagersResult.from_json(data)

    def clean_tombstones(self) -> None:
        """Remove deleted data from disk and clean up tombstones."""
        self._call("POST", _EP_CLEAN_TOMBSTONES)

    def config(self) -> ConfigResult:
        """Return the loaded configuration."""
        data, _ = self._call("GET", _EP_CONFIG)
        return ConfigResult.from_json(data)

    def delete_series(
        self, matches: Sequence[str], start_time: datetime, end_time: datetime
    ) -> None:
        """Delete data of the matching series within a time range."""
        params = [("match[]", m) for m in matches or ()]
        params += [("start", format_time(start_time)), ("end", format_time(end_time))]
        self._call("POST", _EP_DELETE_SERIES, params)

    def flags(self) -> dict[str, str]:
        """Return the flag values the server was started with."""
        data, _ = self._call("GET", _EP_FLAGS)
        result: dict[str, str] = {}
        for name, value in _mapping(data, "flags").items():
            if not isinstance(value, str):
                raise ValueError(f"value of flag {name!r} must be a string")
            result[name] = value
        return result

    def buildinfo(self) -> BuildinfoResult:
        """Return build information of the server."""
        data, _ = self._call("GET", _EP_BUILDINFO)
        return BuildinfoResult.from_json(data)

    def runtimeinfo(self) -> RuntimeinfoResult:
        """Return runtime information of the server."""
        data, _ = self._call("GET", _EP_RUNTIMEINFO)
        return RuntimeinfoResult.from_json(data)

    def label_names(
        self, matches: Sequence[str] | None, start_time: datetime, end_time: datetime
    ) -> tuple[list[str], list[str] | None]:
        """Return label names in the time range, with the response warnings."""
        params = [("start", format_time(start_time)), ("end", format_time(end_time))]
        params += [("match[]", m) for m in matches or ()]
        data, warnings = self._call("GET", _EP_LABELS, params)
        return _strings(data, "label names"), warnings

    def label_values(
        self,
        label: str,
        matches: Sequence[str] | None,
        start_time: datetime,
        end_time: datetime,
    ) -> tuple[list[str], list[str] | None]:
        """Return the values of a label in the time range, with the response warnings."""
        params = [("start", format_time(start_time)), ("end", format_time(end_time))]
        params += [("match[]", m) for m in matches or ()]
        data, warnings = self._call("GET", _EP_LABEL_VALUES, params, {"name": label})
        return _strings(data, "label values"), warnings

    def _query_result(
        self, ep: str, params: list[tuple[str, str]]
    ) -> tuple[Value | None, list[str] | None]:
        url = self._client.url(ep, None)
        _, data, warnings = self._client.do_get_fallback(url, params)
        if data is None:
            return None, warnings
        obj = _mapping(data, "query result")
        return decode_value(obj.get("resultType", ""), obj.get("result")), warnings

    def query(
        self, query: str, ts: datetime | None = None
    ) -> tuple[Value | None, list[str] | None]:
        """Evaluate an instant query, at ``ts`` if given."""
        params = [("query", query)]
        if ts is not None:
            params.append(("time", format_time(ts)))
        return self._query_result(_EP_QUERY, params)

    def query_range(
        self, query: str, range_: Range
    ) -> tuple[Value | None, list[str] | None]:
        """Evaluate a query over a range of time."""
        step: timedelta = range_.step
        params = [
            ("query", query),
            ("start", format_time(range_.start)),
            ("end", format_time(range_.end)),
            ("step", _format_float(step.total_seconds())),
        ]
        return self._query_result(_EP_QUERY_RANGE, params)

    def query_exemplars(
        self, query: str, start_time: datetime, end_time: datetime
    ) -> list[ExemplarQueryResult]:
        """Return exemplars of the query within a time range."""
        params = [
            ("query", query),
            ("start", format_time(start_time)),
            ("end", format_time(end_time)),
        ]
        data, _ = self._call("GET", _EP_QUERY_EXEMPLARS, params)
        return [ExemplarQueryResult.from_json(e) for e in _sequence(data, "exemplars")]

    def series(
        self, matches: Sequence[str], start_time: datetime, end_time: datetime
    ) -> tuple[list[dict[str, str]], list[str] | None]:
        """Find series by label matchers, with the response warnings."""
        params = [("match[]", m) for m in matches or ()]
        params += [("start", format_time(start_time)), ("end", format_time(end_time))]
        data, warnings = self._call("GET", _EP_SERIES, params)
        return [_labels(item) for item in _sequence(data, "series")], warnings

    def snapshot(self, skip_head: bool) -> SnapshotResult:
        """Create a snapshot of all current data."""
        params = [("skip_head", "true" if skip_head else "false")]
        data, _ = self._call("POST", _EP_SNAPSHOT, params)
        return SnapshotResult.from_json(data)

    def rules(self) -> RulesResult:
        """Return the loaded alerting and recording rules."""
        data, _ = self._call("GET", _EP_RULES)
        return RulesResult.from_json(data)

    def targets(self) -> TargetsResult:
        """Return the state of target discovery."""
        data, _ = self._call("GET", _EP_TARGETS)
        return TargetsResult.from_json(data)

    def targets_metadata(
        self, match_target: str, metric: str, limit: str
    ) -> list[MetricMetadata]:
        """Return metadata about metrics scraped by the matching targets."""
        params = [("match_target", match_target), ("metric", metric), ("limit", limit)]
        data, _ = self._call("GET", _EP_TARGETS_METADATA, params)
        return [MetricMetadata.from_json(m) for m in _sequence(data, "metadata")]

    def metadata(self, metric: str, limit: str) -> dict[str, list[Metadata]]:
        """Return metadata of metrics by metric name."""
        params = [("metric", metric), ("limit", limit)]
        data, _ = self._call("GET", _EP_METADATA, params)
        return {
            name: [Metadata.from_json(m) for m in _sequence(items, "metadata")]
            for name, items in _mapping(data, "metadata").items()
        }

    def tsdb(self) -> TSDBResult:
        """Return cardinality statistics of the TSDB."""
        data, _ = self._call("GET", _EP_TSDB)
        return TSDBResult.from_json(data)