# fcgiworks

Building blocks for FastCGI applications, using only the Python standard
library. It runs on POSIX systems (it relies on `select.poll`, `pwd` and
`grp`).

## Modules

### `fcgiworks.endian`

- `encode(value, fmt)` returns `value` packed big-endian with a single
  `struct` format code.
- `decode(data, fmt)` reads such a value from the start of `data`.

Only codes whose size is 2, 4 or 8 bytes are accepted, for example `"H"`,
`"i"`, `"q"`, `"f"` and `"d"`. Anything else raises `ValueError`, as does
too little data.

```python
from fcgiworks.endian import encode, decode

assert encode(0x1234, "H") == b"\x12\x34"
assert decode(b"\x00\x00\x00\x2a", "I") == 42
```

### `fcgiworks.protocol`

The FastCGI record layout:

- Constants: `VERSION`, `HEADER_SIZE`, `CHUNK_SIZE`, `MAX_CONTENT_LENGTH`,
  `BAD_FCGI_ID` and `KEEP_CONN`.
- Enumerations: `RecordType`, `Role` and `ProtocolStatus`.
- `RequestId(fcgi_id, socket)` is a frozen value that pairs a request id with
  its connection.
- `Header(type, fcgi_id, content_length, padding_length, version)` has
  `pack()` and `Header.unpack(data)`. Unknown record types are kept as plain
  integers.
- `process_param_header(data, offset=0)` decodes one name-value pair. It
  returns `Param(name, value, end)`, or `None` when the data stops short.
- `encode_param(name, value)` encodes a pair. It accepts `str` (encoded as
  UTF-8) or bytes.
- `get_record_size(content_length)` gives the padded size of a record. The
  content length is capped at 65535.
- `management_reply(name, value)` builds a `GET_VALUES_RESULT` record.
  Ready-made replies: `MAX_CONNS_REPLY` (`"10"`), `MAX_REQS_REPLY` (`"50"`)
  and `MPXS_CONNS_REPLY` (`"1"`).
- `parse_begin_request(data)` returns `(role, kill)`. `kill` is true when
  the keep-connection flag is clear.
- `end_request_record(request_id, app_status=0, protocol_status=REQUEST_COMPLETE)`
  and `unknown_type_record(record_type)` build complete records.

```python
from fcgiworks.protocol import encode_param, process_param_header

data = encode_param("SCRIPT_NAME", "/app")
name, value, end = process_param_header(data)
assert (name, value, end) == (b"SCRIPT_NAME", b"/app", len(data))
```

### `fcgiworks.log`

- `header(level, when=None)` builds the line prefix: `"%b %d %H:%M:%S "`,
  the host name, the program name with its process id, and a level label
  such as `[error]: `.
- `log(level, message, stream=None)` writes one prefixed line to standard
  error, or to the stream given.
- Setting `fcgiworks.log.suppress = True` silences `log`.
- `Level` holds `INFO`, `FAIL`, `ERROR`, `WARNING`, `DEBUG` and `DIAG`.
- `get_hostname()` and `get_program()` supply the host and program parts.

### `fcgiworks.poll`

`Poll` watches sockets or descriptors for input, errors and hang-ups.

- `add(sock)` and `remove(sock)` return `False` when there is nothing to do.
- `poll(timeout=-1)` waits up to `timeout` milliseconds; a negative timeout
  blocks. It returns one `PollResult`, or `None`.
- `close()` stops watching everything.
- `PollResult` exposes `socket`, `events`, `readable`, `error`, `hangup` and
  `peer_closed`.

### `fcgiworks.sockets`

`SocketGroup` listens for connections and polls every connection it holds.

Listening:

- `listen_default()` uses the listening socket passed as standard input.
- `listen_unix(name, permissions, owner, group)` uses a socket file. The file
  is removed by `close()`.
- `listen_tcp(interface, service)` listens on a TCP port.
- All three raise `OSError` on failure.
- `reuse_address(value)` sets `SO_REUSEADDR` for later TCP listeners.
- `accept(status)` turns accepting on or off.

Connecting:

- `connect_unix(name)` and `connect_tcp(host, service)` return a `Socket`.
  That socket is invalid if the connection failed.

Polling:

- `poll(block)` accepts new connections and tears down dead ones. It returns
  the socket that has data waiting, or an invalid `Socket` when nothing waits
  or the wait was ended by `wake()`.
- `wake()` may be called from any thread.

`len(group)` counts open connections. The group is also a context manager.

`Socket` has these members:

- `read(size)` returns the bytes that are waiting, or `b""` when there are
  none.
- `write(data)` returns the number of bytes written.
- `close()`, `valid`, `closing` and `fileno()`.

`read` and `write` raise `ConnectionError` once the connection is gone.
Copies of a `Socket` share one state, compare equal and can be hashed.

### `fcgiworks.mailer`

`Mailer` delivers queued `Email(sender, recipient, body)` objects one at a
time from a background thread over SMTP. `body` may be bytes or `str`; a
`str` is encoded as UTF-8.

- `init(host, origin, port=25, retry_interval=30)` configures the mailer.
  Only the first call counts.
- `start()` launches the thread.
- `queue(email)` adds a message.
- `stop()` quits after everything queued is delivered.
- `terminate()` quits at once.
- `join()` waits for the thread to end.

The server must announce `8BITMIME`. After any error the mailer waits
`retry_interval` seconds and tries the same message again.

```python
from fcgiworks.mailer import Mailer, Email

mailer = Mailer()
mailer.init("localhost", "app.example.com", 25, 15)
mailer.start()
mailer.queue(Email(
    sender="app@example.com",
    recipient="user@example.com",
    body=b"Subject: hi\r\n\r\nHello",
))
mailer.stop()
mailer.join()
```

### `fcgiworks.parameters`

Binary one-dimensional array parameters in the PostgreSQL array wire format.

- `NumericArray(values, kind="integer")` takes a `kind` of `smallint`,
  `integer`, `bigint`, `real` or `double precision`.
- `TextArray(values)` takes text values.
- Both support `bytes()`, `len()`, indexing and `oid`.
- `encode_text(value)` and `decode_text(data)` convert to and from UTF-8.
  They log a warning and return an empty result when conversion fails.

## What this package does not do

There is no request handler and no application manager:

- nothing turns incoming records into requests;
- nothing parses the HTTP environment or POST data;
- nothing dispatches work to threads, answers `GET_VALUES` queries by itself
  or runs a FastCGI application.

The modules above provide the record formats, connections and polling from
which such a loop can be built.

## Tests

The tests use pytest, which is available through the `test` extra.