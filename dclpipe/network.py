"""TCP command client, server and proxy exchanging newline-terminated messages."""

from __future__ import annotations

import logging
import queue
import selectors
import socket
import sys
import threading
from collections import deque
from typing import Callable, Optional

from .messages import Command, Connection, Message, connect_information, parse_api_request

log = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 10
LISTEN_BACKLOG = 10
REPLY_OK = b"RE{ok}\n"

_LISTENER = object()
_FORWARDED = (Command.STOP, Command.START, Command.SET, Command.GET)


class _Poller:
    """A background thread waiting for readable sockets and passing them to a handler."""

    def __init__(
        self,
        name: str,
        handler: Callable[[socket.socket, object], None],
        on_exit: Callable[[], None],
        max_events: int,
    ) -> None:
        self._name = name
        self._handler = handler
        self._on_exit = on_exit
        self._max_events = max(1, max_events)
        self._selector = selectors.DefaultSelector()
        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._selector.register(self._wake_r, selectors.EVENT_READ, None)
        self._pending: queue.SimpleQueue = queue.SimpleQueue()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def watch(self, sock: socket.socket, data: object) -> None:
        """Ask the loop to start watching ``sock``."""
        self._pending.put((sock, data))
        self._wake()

    def forget(self, sock: socket.socket | None) -> None:
        """Stop watching ``sock``; only called from the loop thread."""
        if sock is None:
            return
        try:
            self._selector.unregister(sock)
        except (KeyError, ValueError):
            pass

    def stop(self) -> None:
        """Ask the loop to finish and wait for it unless called from the loop itself."""
        self._stopping.set()
        self._wake()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _wake(self) -> None:
        try:
            self._wake_w.send(b"\0")
        except OSError:
            pass

    def _drain_wake(self) -> None:
        try:
            while self._wake_r.recv(4096):
                pass
        except (BlockingIOError, OSError):
            pass

    def _register_pending(self) -> None:
        while True:
            try:
                sock, data = self._pending.get_nowait()
            except queue.Empty:
                return
            if sock.fileno() == -1:
                continue
            try:
                self._selector.register(sock, selectors.EVENT_READ, data)
            except (KeyError, ValueError, OSError) as exc:
                log.warning("could not watch socket: %s", exc)

    def _run(self) -> None:
        try:
            while not self._stopping.is_set():
                self._register_pending()
                events = self._selector.select()
                if self._stopping.is_set():
                    log.debug("[%s]: stopping thread on request", self._name)
                    break
                for key, _ in events[: self._max_events]:
                    if key.data is None:
                        self._drain_wake()
                        continue
                    try:
                        self._handler(key.fileobj, key.data)
                    except Exception:
                        log.exception("[%s]: event handler failed", self._name)
        finally:
            try:
                self._on_exit()
            finally:
                self._selector.close()
                self._wake_r.close()
                self._wake_w.close()


def _receive(conn: Connection) -> bool:
    """Read whatever is waiting on the connection; False when it must be closed."""
    if conn.sock is None or conn.remaining <= 0:
        return False
    try:
        data = conn.sock.recv(conn.remaining)
    except OSError as exc:
        log.info("read error on %s:%s: %s", conn.host, conn.service, exc)
        return False
    if not data:
        return False
    conn.feed(data)
    return True


def _read_stdin(client: "Client") -> str:
    try:
        line = input("$ ")
    except EOFError:
        return "QUIT\n"
    return line + "\n"


class Client:
    """Sends commands read from ``read_action`` to servers and gathers their replies.

    ``event_callback(client, message)`` receives every message arriving from a
    server; without one the messages are kept in ``replies`` until a STATUS
    command collects them.
    """

    def __init__(
        self,
        event_callback: Optional[Callable[["Client", Message], object]] = None,
        read_action: Optional[Callable[["Client"], str]] = None,
    ) -> None:
        self.event_callback = event_callback
        self.read_action = read_action
        self.max_events = DEFAULT_MAX_EVENTS
        self.exit_flag = False
        self.replies: deque[Message] = deque()
        self._connections: list[Connection] = []
        self._lock = threading.Lock()
        self._closed = False
        self._poller = _Poller("client-events", self._on_event, lambda: None, self.max_events)
        self._poller.start()

    @property
    def connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections)

    @property
    def closed(self) -> bool:
        return self._closed

    def add_connection(self, host: str, port: str | int) -> Connection:
        """Connect to ``host:port`` and start listening for its messages."""
        if self._closed:
            raise RuntimeError("client is closed")
        service = str(port)
        sock = socket.create_connection((host, service))
        conn = Connection(sock, host, service)
        with self._lock:
            self._connections.append(conn)
        self._poller.watch(sock, conn)
        log.info("new connection to %s:%s", host, service)
        return conn

    def find_connection(self, host: str, port: str | int) -> Connection | None:
        """Return the open connection to ``host:port``, if there is one."""
        service = str(port)
        with self._lock:
            for conn in self._connections:
                if conn.service == service and conn.host == host:
                    return conn
        return None

    def execute(self, message: Message) -> list[Message] | None:
        """Carry out a command; STATUS returns and clears the collected replies."""
        cmd = message.cmd
        if cmd is Command.QUIT:
            self.exit_flag = True
            self._poller.stop()
            return None
        if cmd is Command.CONNECT:
            try:
                host, port = connect_information(message)
                self.add_connection(host, port)
            except ValueError:
                log.warning("connection information is wrong %s", message.text)
            except OSError as exc:
                log.warning("could not connect for %s: %s", message.text, exc)
            return None
        if cmd is Command.STATUS:
            collected = []
            while True:
                try:
                    collected.append(self.replies.popleft())
                except IndexError:
                    return collected
        if cmd in _FORWARDED:
            self._forward(message)
            return None
        log.warning("unsupported command %s [%s]", message.text, cmd)
        return None

    def _forward(self, message: Message) -> None:
        try:
            host, port = connect_information(message)
        except ValueError:
            log.warning("connection information is wrong %s", message.text)
            return
        conn = self.find_connection(host, port)
        if conn is None or conn.sock is None:
            log.info("no connection to %s:%s, try to reconnect", host, port)
            try:
                conn = self.add_connection(host, port)
            except OSError as exc:
                log.warning("could not connect to %s:%s: %s", host, port, exc)
                return
        text = message.text if message.text.endswith("\n") else message.text + "\n"
        try:
            conn.sock.sendall(text.encode("utf-8"))
        except (OSError, AttributeError) as exc:
            log.warning("could not send to %s:%s: %s", host, port, exc)

    def run(self) -> None:
        """Read, parse and execute commands until a QUIT command arrives."""
        read = self.read_action or _read_stdin
        while not self.exit_flag:
            self.execute(parse_api_request(read(self)))

    def close(self) -> None:
        """Stop the event thread and close every connection."""
        if self._closed:
            return
        self._closed = True
        self.exit_flag = True
        self._poller.stop()
        with self._lock:
            conns = list(self._connections)
            self._connections.clear()
        for conn in conns:
            conn.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _drop(self, conn: Connection) -> None:
        self._poller.forget(conn.sock)
        with self._lock:
            if conn in self._connections:
                self._connections.remove(conn)
        conn.close()

    def _on_event(self, sock: socket.socket, conn: Connection) -> None:
        if not _receive(conn):
            log.info("problems with read, close connection %s:%s", conn.host, conn.service)
            self._drop(conn)
            return
        while (message := conn.extract_message()) is not None:
            if self.event_callback is None:
                self.replies.append(message)
            else:
                self.event_callback(self, message)


def _bind(port: str) -> socket.socket:
    last: OSError | None = None
    for family, socktype, proto, _, address in socket.getaddrinfo(
        None, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
    ):
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last = exc
            continue
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(address)
            sock.listen(LISTEN_BACKLOG)
        except OSError as exc:
            sock.close()
            last = exc
            continue
        return sock
    if last is not None:
        raise OSError(f"could not bind port {port}: {last}") from last
    raise OSError(f"could not bind port {port}")


class Server:
    """Accepts connections and executes every complete line received as a command.

    ``execute_callback(server, message)`` replaces the default ``execute``;
    ``send_replies_callback(server, connection)`` runs after each message.
    """

    def __init__(
        self,
        port: str | int,
        max_events: int = DEFAULT_MAX_EVENTS,
        execute_callback: Optional[Callable[["Server", Message], object]] = None,
        send_replies_callback: Optional[Callable[["Server", Connection], object]] = None,
    ) -> None:
        self._requested_port = str(port)
        self.max_events = max_events
        self.execute_callback = execute_callback
        self.send_replies_callback = send_replies_callback
        self.stopped = threading.Event()
        self._listener: socket.socket | None = None
        self._connections: list[Connection] = []
        self._lock = threading.Lock()
        self._poller: _Poller | None = None

    @property
    def port(self) -> int | None:
        """The port actually listened on, once started."""
        listener = self._listener
        if listener is None:
            return None
        return listener.getsockname()[1]

    @property
    def connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections)

    def start(self) -> None:
        """Bind the port and start serving in a background thread."""
        if self._poller is not None or self.stopped.is_set():
            raise RuntimeError("server is already started")
        listener = _bind(self._requested_port)
        listener.setblocking(False)
        self._listener = listener
        self._poller = _Poller("server-listen", self._on_event, self._shutdown, self.max_events)
        self._poller.watch(listener, _LISTENER)
        self._poller.start()

    def execute(self, message: Message) -> None:
        """Default command handling: STOP shuts the server down."""
        if message.cmd is Command.STOP:
            log.info("stop command received")
            self._request_stop()
            return
        log.warning("unsupported command %s", message.text)

    def stop(self) -> None:
        """Close all connections and stop serving."""
        self._request_stop()

    def __enter__(self) -> "Server":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _request_stop(self) -> None:
        if self._poller is None:
            self.stopped.set()
        else:
            self._poller.stop()

    def _shutdown(self) -> None:
        with self._lock:
            conns = list(self._connections)
            self._connections.clear()
        for conn in conns:
            conn.close()
        if self._listener is not None:
            self._listener.close()
        self.stopped.set()

    def _on_event(self, sock: socket.socket, data: object) -> None:
        if data is _LISTENER:
            self._accept()
            return
        conn = data
        if not _receive(conn):
            log.info("close connection %s:%s", conn.host, conn.service)
            self._poller.forget(conn.sock)
            with self._lock:
                if conn in self._connections:
                    self._connections.remove(conn)
            conn.close()
            return
        while (message := conn.extract_message()) is not None:
            self._dispatch(conn, message)

    def _accept(self) -> None:
        try:
            sock, address = self._listener.accept()
        except OSError as exc:
            log.warning("could not accept new connection: %s", exc)
            return
        sock.setblocking(True)
        host, service = str(address[0]), str(address[1])
        log.info("received connection from %s:%s", host, service)
        conn = Connection(sock, host, service)
        with self._lock:
            self._connections.append(conn)
        self._poller.watch(sock, conn)

    def _dispatch(self, conn: Connection, message: Message) -> None:
        if self.execute_callback is None:
            self.execute(message)
        else:
            self.execute_callback(self, message)
        if self.send_replies_callback is not None and conn.sock is not None:
            self.send_replies_callback(self, conn)


class Proxy:
    """One server together with a bounded set of clients."""

    def __init__(self, max_clients: int) -> None:
        if max_clients < 0:
            raise ValueError("max_clients must not be negative")
        self.max_clients = max_clients
        self.server: Server | None = None
        self.clients: list[Client] = []
        self.exit_flag = False

    def add_server(self, server: Server) -> None:
        self.server = server

    def add_client(self, client: Client) -> None:
        if len(self.clients) >= self.max_clients:
            raise OverflowError("proxy client table is full")
        self.clients.append(client)

    def close(self) -> None:
        """Close every client."""
        for client in self.clients:
            client.close()
        self.clients.clear()
        self.exit_flag = True

    def __enter__(self) -> "Proxy":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def server_main(argv: list[str] | None = None) -> int:
    """Serve commands on the given port until a STOP command arrives."""
    if argv is None:
        argv = sys.argv[1:]
    if len(argv) != 1:
        print("Usage: server port", file=sys.stderr)
        return 1
    server = Server(argv[0], DEFAULT_MAX_EVENTS)
    try:
        server.start()
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        while not server.stopped.wait(2):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0


def client_main(argv: list[str] | None = None) -> int:
    """Read commands from standard input and send them to servers."""
    with Client() as client:
        try:
            client.run()
        except KeyboardInterrupt:
            pass
    return 0


def proxy_main(argv: list[str] | None = None) -> int:
    """Run a server plus a client connected to each given host and port."""
    if argv is None:
        argv = sys.argv[1:]
    if len(argv) < 1:
        print("Usage: proxy srv_port [cli_host cli_port]", file=sys.stderr)
        return 1
    proxy = Proxy((len(argv) - 1) // 2 + 1)
    server = Server(argv[0], DEFAULT_MAX_EVENTS)
    try:
        server.start()
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1
    proxy.add_server(server)
    client = Client()
    proxy.add_client(client)
    for host, port in zip(argv[1::2], argv[2::2]):
        try:
            client.add_connection(host, port)
        except OSError as exc:
            print(f"could not connect to {host}:{port}: {exc}", file=sys.stderr)
    try:
        while not proxy.exit_flag and not server.stopped.wait(2):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        proxy.close()
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(server_main())