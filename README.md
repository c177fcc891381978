# promapi

A Python client for the Prometheus HTTP API v1. It runs instant and range
queries, and it reads alerts, Alertmanager discovery, rules, targets, metric
metadata, label names and values, series, exemplars, configuration, flags,
build and runtime information, and TSDB statistics. It can also call the
admin endpoints: snapshot, delete series and clean tombstones.

The package is a library. It has no command-line program. Its only dependency
is `requests`. Install it with pip from the project directory. The `test`
extra adds `pytest` and `responses`.

## Usage

```python
from datetime import datetime, timedelta, timezone

from promapi.api import API
from promapi.client import Client, Config
from promapi.types import Range

client = Client(Config(address="http://localhost:9090"))
api = API(client)

value, warnings = api.query("up", datetime.now(timezone.utc))
print(value)

now = datetime.now(timezone.utc)
matrix, warnings = api.query_range(
    "rate(prometheus_tsdb_head_samples_appended_total[5m])",
    Range(start=now - timedelta(hours=1), end=now, step=timedelta(minutes=1)),
)
```

`API.query` and `API.query_range` return a pair `(value, warnings)`. The
`warnings` element is a list of strings, or `None` if the server sent none.
`value` is one of the following:

- a `promapi.model.Scalar`,
- a list of `promapi.model.Sample` for an instant vector,
- a list of `promapi.model.SampleStream` for a range vector,
- `None` if the response carried no data.

Timestamps in these values are integer milliseconds. Queries are sent as a
form POST. If the server answers 405 or 501, the query is repeated as a GET.

`label_names`, `label_values` and `series` also return their result together
with the warnings. The other methods return only their result:

- `alerts`, `alert_managers`, `config`, `buildinfo`, `runtimeinfo`, `rules`,
  `targets`, `tsdb` and `snapshot` return the matching class from
  `promapi.types`, such as `RulesResult`, `TargetsResult` or `TSDBResult`.
- `flags` returns a dict.
- `metadata` returns a dict of lists of `Metadata`.
- `targets_metadata` returns a list of `MetricMetadata`.
- `query_exemplars` returns a list of `ExemplarQueryResult`.

Times passed to these methods are `datetime` objects. A naive datetime is read
as local time.

`promapi.model` also encodes samples. `SamplePair.to_json()` produces
`[seconds,"value"]`, and `SamplePair.from_json` reads that form back.
`format_timestamp`, `parse_timestamp` and `format_sample_value` are the
helpers behind them.

### Errors

`promapi.types.APIError` is raised in these cases:

- the server reports an error,
- the status code is unexpected,
- the body cannot be decoded.

The error has these attributes:

- `type`: an `ErrorType` member, or the raw string if the server sent a type
  this package does not know.
- `msg`: the message.
- `detail`: the response body, for unexpected status codes.

When an error is raised from a decoded API response, its `warnings` attribute
holds that response's warnings.

```python
from promapi.types import APIError, ErrorType

try:
    api.query("sum(", datetime.now(timezone.utc))
except APIError as err:
    if err.type is ErrorType.BAD_DATA:
        print("bad query:", err)
```

A malformed result body raises `ValueError`. A transport failure raises the
`requests` exception for that failure.

### Custom sessions and timeouts

All HTTP traffic goes through a `requests.Session`. To add authentication or
headers, pass your own session in `Config`:

```python
import requests

session = requests.Session()
session.headers["Authorization"] = "Bearer token"
client = Client(Config(address="http://localhost:9090", session=session))
```

Without a session, the client uses the shared one returned by
`promapi.client.default_session()`.

`Client.do` waits at most 30 seconds to connect and does not limit reads,
unless it is given a `timeout`. The `API` methods use that default.

## What it does not do

This package only talks to a running Prometheus server. It does not do any of
the following:

- instrument your own code with counters, gauges or histograms,
- keep a metrics registry,
- serve a `/metrics` endpoint for scraping.

Requests cannot be cancelled once sent. Use a timeout to bound how long they
take.