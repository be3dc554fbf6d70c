# dclpipe

Small building blocks for pipelines in which several processes hand data
to one another:

- `dclpipe.ring_buffer` – a bounded, thread-safe FIFO of integer values;
- `dclpipe.processes` – a fixed-size table of child worker processes and
  signal handling around them;
- `dclpipe.messages` and `dclpipe.network` – a newline-terminated text
  command protocol over TCP with a client, a server and a proxy;
- `dclpipe.filelist` and `dclpipe.filereader` – walking a directory of
  numbered frame files and copying them one by one;
- `dclpipe.storage` – an in-memory model of object descriptors, framesets
  and frames.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Command line

### dclpipe-filereader

```
dclpipe-filereader -i frames/ -o out/ -s 0 -f 100
```

Options: `-i/--input` (file or directory, required), `-o/--output`
(required), `-s/--start` and `-f/--finish` (frame numbers, not negative),
`-h/--help`. A directory is listed, the files are ordered by the number
after their last underscore, and frames `start` up to (not including)
`finish` are handled; an undefined start is 0 and an undefined or too large
finish is the number of files. Each file's bytes are read and written
unchanged to `<output>/<base>..r.bmp`. The exit status is 1 on usage or
option errors and 0 otherwise.

### dclpipe-server

```
dclpipe-server 5000
```

Listens on the port and parses every line received. A line containing
`STOP` shuts the server down; other commands are logged as unsupported. No
reply is sent by default.

### dclpipe-client

```
dclpipe-client
```

Reads commands at a `$ ` prompt:

- `connect HOST PORT` opens a connection;
- `start HOST PORT`, `stop HOST PORT`, `set HOST PORT`, `get HOST PORT`
  send the line to that connection, connecting first if needed;
- `quit` or `q` (or end of input) ends the client.

Commands are recognised case-insensitively anywhere in the line, so a host
name containing a command word changes the command.

### dclpipe-proxy

```
dclpipe-proxy 5000 [HOST PORT ...]
```

Runs a server on the port and one client connected to each `HOST PORT`
pair, until the server receives `STOP` or the process is interrupted.

## Library

### Ring buffer

```python
from dclpipe.ring_buffer import RingBuffer

ring = RingBuffer(4, True)
ring.push(1024)
ring.push(2048)
assert len(ring) == 2
assert ring.pop(timeout=1.0) == 1024
```

`RingBuffer(max_cnt, False)` starts full, every slot holding 0. `push`
raises `OverflowError` when the buffer is full; `pop` blocks, and raises
`TimeoutError` if nothing arrives within `timeout` seconds.

### File lists

```python
from dclpipe.filelist import get_id, split_filename, sort_filelist, get_filelist

assert split_filename("frames/shot_12.tiff") == ("frames", "shot_12", "tiff")
assert get_id("frames/shot_12.tiff") == 12
files = sort_filelist(get_filelist("frames", "tiff"))
```

`get_filelist` raises `FileNotFoundError` for a missing path, returns a
plain file as a one-element list, and for a directory returns
`<path>/<name>` for each entry whose extension matches (case-insensitively;
all entries when the extension is `None`). `get_id` returns -1 when no
number follows an underscore.

### Storage model

```python
from dclpipe.storage import ObjectDescriptor, pipeline_middle_process

descriptor = ObjectDescriptor(4)
frameset = descriptor.frameset(descriptor.framesets_ids()[0]).get()
image = frameset.frame(frameset.frames_ids()[0]).get().image()
assert image.shape == (5, 2)

assert pipeline_middle_process(lambda obj, a, b: obj.framesets_count()) == 42
```

A `Frameset` holds three frames unless told otherwise. `frames_ids()` and
`framesets_ids()` always return ten identifiers, numbered 0 to 9, so ids
beyond the stored count raise `IndexError` on lookup. `Frame.image()`
returns a fixed 5×2 `float32` array of the values 0 to 9. `ObjectRef.get()`
raises `RuntimeError` when the reference is unbound. Names given to
`ObjectID` longer than 71 characters are clipped with a warning.
`pipeline_middle_process` calls the callback with a 42-frameset descriptor
and `"arg1"`, `"arg2"`, returning its result as an int (-1 for `None`).

### Worker processes

```python
from dclpipe.processes import ProcessManager

with ProcessManager(3) as manager:
    slot = manager.start(["/usr/bin/env", "true"])
    finished = manager.cleanup()   # {slot: exit status} for reaped children
```

Each child is started with its slot number in the `SHMEM_PROCESS_ID`
environment variable; starting more than the table holds raises
`RuntimeError`. `kill_all` sets every started slot's command to
`ProcessCommand.STOP`, releases its `sem_job` and waits on its `sem_result`.

`SignalWatcher(on_exit)` calls `on_exit` on `SIGINT`/`SIGTERM` and reaps
children on `SIGCHLD`; use it as a context manager or with `start`/`stop`.
`set_signal_reactions()` turns on tracebacks for fatal signals and blocks
`SIGCHLD`, `SIGINT` and `SIGTERM`, returning the previous mask.

### Messages and connections

```python
from dclpipe.messages import Command, connect_information, parse_api_request

message = parse_api_request("CONNECT localhost 5000\n")
assert message.cmd is Command.CONNECT
assert connect_information(message) == ("localhost", "5000")
```

A `Connection` buffers up to 513 bytes (`feed` raises `BufferError` when
full) and `extract_message` returns one parsed `Message` per complete line.

`Server(port, max_events, execute_callback, send_replies_callback)`,
`Client(event_callback, read_action)` and `Proxy(max_clients)` in
`dclpipe.network` combine these over TCP. Without an `event_callback`, a
client keeps incoming messages in `replies`; `Client.execute` with a
`STATUS` command returns and clears them.

## What this package does not do

- No shared-memory segment: worker processes learn only their slot number,
  and the semaphores in `ProcessInfo` are in-process thread semaphores, not
  shared with the children.
- `dclpipe-filereader` does not decode or convert images; it copies bytes.
- The interactive client does not print collected replies for `status`.