# canopus

Asyncio building blocks for supervising long-running services:

- restart decisions with exponential backoff;
- TCP readiness and health probes;
- a broadcast event bus and a bounded log buffer;
- interfaces for process and reverse-proxy adapters;
- a small JSON-over-TCP control daemon.

The package has no third-party dependencies.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command

### `canopus-toy`

`canopus-toy` is a tiny TCP service that is handy as a target for probes and
supervision tests. Once it is listening on all interfaces, it prints `ready`
on standard output. It then accepts connections, writes `ready` followed by a
newline to each one, and closes it.

```
canopus-toy 9000
PORT=9000 canopus-toy
```

The port comes from the `PORT` environment variable first, then from the
first argument. If neither holds a valid port (0–65535), it is 8081. If the
port cannot be bound, the command prints the error and exits with status 1.

## Library

### `canopus.model`

`canopus.model` holds the data types, as frozen dataclasses and enums.

Specifications:

- `ServiceSpec` describes a service.
- `RestartPolicy` has the members `NEVER`, `ON_FAILURE` and `ALWAYS`.
- `BackoffConfig` holds the backoff settings. Its defaults are: base delay
  1 s, multiplier 2.0, maximum delay 60 s, jitter 0.1 and failure window
  300 s.
- `TcpCheck` names a port to probe.
- `HealthCheck` and `ReadinessCheck` say how and when that port is probed.

Lifecycle:

- `ServiceExit` records how a process ended. `is_failure()` is true unless
  the process exited with code 0 and no signal.
- `ServiceState` has the members `IDLE`, `SPAWNING`, `STARTING`, `READY` and
  `STOPPING`.
- `LogStream` has the members `STDOUT` and `STDERR`.

Events:

- `StateChanged`
- `ProcessStarted`
- `ProcessExited`
- `LogOutput`
- `ServiceWarning`
- `ConfigurationUpdated`
- `ReadinessCheckResult`
- `HealthCheckResult`
- `StartupTimeout`
- `ServiceUnhealthy`
- `RouteAttached`
- `RouteDetached`

`current_timestamp()` returns the current UTC time in RFC 3339 form, ending
in `Z`.

### `canopus.restart_policy`

`RestartPolicyEngine` decides what happens after a service exits:

- `never`: the service is never restarted.
- `on-failure`: the service is restarted after a failure. A clean exit stops
  it and clears the failure history.
- `always`: the service is restarted after every exit. A clean exit clears
  the failure history, and the restart then comes after the minimal delay of
  100 ms.

The delay is computed from the failures that fall inside the failure window:

1. It starts as `base_delay * multiplier ** (failures - 1)`.
2. It is capped at the maximum delay.
3. It is spread by ±`jitter`.

```python
from canopus.model import BackoffConfig, RestartPolicy, ServiceExit
from canopus.restart_policy import RestartPolicyEngine

engine = RestartPolicyEngine(RestartPolicy.ON_FAILURE, BackoffConfig(jitter=0.0))
action = engine.should_restart(ServiceExit(pid=1234, exit_code=1))
print(action.should_restart, action.delay_ms)   # True 1000
```

`FailureTracker` is the sliding window the engine uses to count failures.
Its timestamps are epoch seconds.

### `canopus.adapters`

Interfaces, to be implemented by the application:

- `ProcessAdapter.spawn(spec)` starts a process for a spec.
- `ManagedProcess` is what `spawn` returns. It provides `wait()`,
  `terminate()` and `kill()`.
- `ProxyAdapter` provides `attach(route, port)` and `detach(route)`.

Ready-made classes:

- `NoopProxyAdapter` only remembers its routes, in `routes`.
- `LogRing` keeps the most recent `LogEntry` records and numbers them in
  order. Its default capacity is 1024.
- `EventBus` broadcasts each event to every subscription. Call `subscribe()`
  to get a subscription. A subscription can be read with `recv()` or
  `recv_nowait()`, or with `async for`. A subscriber that falls `capacity`
  events behind loses the oldest ones, and counts them in `lagged`.

### `canopus.probes`

`run_probe(check)` opens a TCP connection to `127.0.0.1` on the check's port.
It returns when the connection succeeds. It raises `ServiceError` when the
connection is refused or fails, or when it does not complete within
`timeout_secs`.

`HealthCheckStatus`, `ReadinessCheckStatus` and `HealthStatus` are records
for reporting probe results.

### `canopus.server`

`Daemon` listens on `DaemonConfig.host` and `DaemonConfig.port`. The defaults
are `127.0.0.1` and `8080`. Port `0` picks a free port, which is then
available as `Daemon.port`. The daemon answers each read of up to 1024 bytes,
holding one JSON message, with one JSON response.

```python
import asyncio
from canopus.server import Daemon, DaemonConfig

asyncio.run(Daemon(DaemonConfig()).start())
```

Messages are JSON objects with a `type` field:

- `{"type": "status"}` returns `running`, `uptime_seconds` and `version`.
- `{"type": "start"}` marks the daemon running. If it is already running,
  the reply is an error with code `DAEMON_ALREADY_RUNNING`.
- `{"type": "stop"}` makes `start()` return. `Daemon.stop()` does the same
  from code.
- `{"type": "restart"}` is acknowledged.
- `{"type": "custom", "cmd": "..."}` is answered with `Processed: <cmd>`.

`Message` and `Response` convert to and from this wire form with
`to_json()` / `from_json()`.

## What the package does not do

- **It does not run services by itself.** There is no process adapter that
  starts real processes, and no loop that drives a service through its
  states using the restart engine and the probes. The application supplies
  both.
- **It has no command to start the control daemon.** Start `Daemon` from
  your own code, as shown above.
- **It does not read service configuration files.**

## Errors

Daemon failures raise subclasses of `DaemonError`:

- `ServerError`
- `DaemonConnectionError`
- `DaemonIOError`
- `SerializationError`

Core failures raise subclasses of `CoreError`:

- `ValidationError`
- `ServiceError`