"""Fake interpreter ends and recording collaborators shared by the tests."""

import json
import socket
import threading
import time

from snail_client.protocol import decode_request


def encode_reply(reply):
    if isinstance(reply, bytes):
        return reply
    return (json.dumps(reply) + "\n").encode("utf-8")


def done(reqid, result=None):
    reply = {"type": "done", "reqid": reqid}
    if result is not None:
        reply["result"] = result
    return reply


def error(reqid, message, stack=()):
    return {"type": "error", "reqid": reqid, "message": message, "stack": list(stack)}


class Peer:
    """Interpreter end of a socketpair."""

    def __init__(self, sock):
        self.sock = sock
        self.reader = sock.makefile("rb")
        self.requests = []
        self._thread = None

    def read_request(self, timeout=2.0):
        self.sock.settimeout(timeout)
        line = self.reader.readline()
        request = decode_request(line)
        self.requests.append(request)
        return request

    def write(self, reply):
        self.sock.sendall(encode_reply(reply))

    def serve(self, handler):
        """Answer every request with ``handler(request)`` until EOF."""

        def run():
            self.sock.settimeout(None)
            while True:
                try:
                    line = self.reader.readline()
                except OSError:
                    return
                if not line:
                    return
                request = decode_request(line)
                self.requests.append(request)
                for reply in handler(request) or []:
                    try:
                        self.write(reply)
                    except OSError:
                        return

        self._thread = threading.Thread(target=run, daemon=True)
        self._thread.start()

    def close(self):
        try:
            self.reader.close()
            self.sock.close()
        except OSError:
            pass


class PairConnector:
    """Connector handing the client one end of a fresh socketpair per connect."""

    def __init__(self):
        self.peers = []
        self.calls = 0

    def __call__(self, address, timeout):
        self.calls += 1
        client_sock, server_sock = socket.socketpair()
        self.peers.append(Peer(server_sock))
        return client_sock

    @property
    def peer(self):
        return self.peers[-1]

    def close(self):
        for peer in self.peers:
            peer.close()


class RecordingBusy:
    def __init__(self):
        self.events = []

    def start(self, context):
        self.events.append(("start", context))

    def stop(self, context):
        self.events.append(("stop", context))


class RecordingViewer:
    def __init__(self):
        self.shown = []

    def show(self, message, stack, context):
        self.shown.append((message, stack, context))


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeInterpreter:
    """Threaded TCP server that decodes request lines and answers via a handler.

    A handler returns a list of replies; each reply is a dict (sent as one
    JSON line) or raw bytes (sent as-is, after a short pause so that pieces
    arrive as separate reads).
    """

    def __init__(self, handler):
        self.handler = handler
        self.requests = []
        self._server = socket.create_server(("127.0.0.1", 0))
        self.port = self._server.getsockname()[1]
        self._conns = []
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def _serve(self):
        while True:
            try:
                conn, _ = self._server.accept()
            except OSError:
                return
            self._conns.append(conn)
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn):
        try:
            with conn.makefile("rb") as reader:
                for line in reader:
                    request = decode_request(line)
                    self.requests.append(request)
                    for reply in self.handler(request) or []:
                        if isinstance(reply, bytes):
                            time.sleep(0.01)
                        conn.sendall(encode_reply(reply))
        except OSError:
            pass

    def stop(self):
        self._server.close()
        for conn in self._conns:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()


