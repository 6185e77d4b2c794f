"""Host side of the bridge: the Data and Command channels on two TCP ports.

Both channels are uvicorn servers driven by one event loop, so request
handlers run one at a time against the shared ModelStore.
"""

from __future__ import annotations

import errno
import json
import logging
import socket
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import anyio
import uvicorn

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.command_channel import create_command_app
from app.config import BridgeConfig, load_config
from app.data_channel import create_data_app
from command_dispatcher import CommandDispatcher
from model_store import ModelStore

logger = logging.getLogger("modelbridge.bridge")

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}


@dataclass
class PortBindError(Exception):
    host: str
    first_port: int
    attempts: int

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        last = self.first_port + self.attempts - 1
        return f"No free port on {self.host} in {self.first_port}..{last} after {self.attempts} attempts"


def bind_with_retry(host: str, port: int, attempts: int = 10, delay: float = 0.1) -> socket.socket:
    """Bind and listen on ``port``, moving to the next port while the address is in use."""
    for offset in range(attempts):
        candidate = port + offset
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, candidate))
            sock.listen(128)
        except OSError as exc:
            sock.close()
            if exc.errno not in _ADDR_IN_USE:
                raise
            logger.warning("port_in_use host=%s port=%s attempt=%s/%s", host, candidate, offset + 1, attempts)
            if offset + 1 < attempts:
                time.sleep(delay)
            continue
        logger.info("port_bound host=%s port=%s", host, candidate)
        return sock
    raise PortBindError(host, port, attempts)


class ChannelServer:
    def __init__(self, name: str, app: Any, host: str, port: int, attempts: int, delay: float) -> None:
        self.name = name
        self.app = app
        self.host = host
        self.preferred_port = port
        self.attempts = attempts
        self.delay = delay
        self.sock: socket.socket | None = None
        self.server: uvicorn.Server | None = None

    @property
    def port(self) -> int | None:
        if self.sock is None:
            return None
        return self.sock.getsockname()[1]

    @property
    def started(self) -> bool:
        return bool(self.server is not None and self.server.started)

    def bind(self) -> int:
        if self.sock is None:
            self.sock = bind_with_retry(self.host, self.preferred_port, self.attempts, self.delay)
        return self.port

    async def serve(self) -> None:
        if self.sock is None:
            raise RuntimeError(f"{self.name} channel is not bound")
        config = uvicorn.Config(self.app, log_level="warning", lifespan="off")
        self.server = uvicorn.Server(config)
        logger.info("channel_serving channel=%s port=%s", self.name, self.port)
        await self.server.serve(sockets=[self.sock])

    def request_exit(self) -> None:
        if self.server is not None:
            self.server.should_exit = True

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None


class Bridge:
    """Owns both channels for one ModelStore."""

    def __init__(self, store: ModelStore, config: BridgeConfig | None = None) -> None:
        self.config = config or load_config()
        self.store = store
        self.dispatcher = CommandDispatcher(store)
        cfg = self.config
        self.data = ChannelServer(
            "data",
            create_data_app(store, lambda: self.data.port),
            cfg.host,
            cfg.data_port,
            cfg.port_attempts,
            cfg.retry_delay,
        )
        self.command = ChannelServer(
            "command",
            create_command_app(self.dispatcher, lambda: self.command.port),
            cfg.host,
            cfg.command_port,
            cfg.port_attempts,
            cfg.retry_delay,
        )
        self._thread: threading.Thread | None = None

    @property
    def ports(self) -> Dict[str, int | None]:
        return {"data": self.data.port, "command": self.command.port}

    def bind(self) -> Dict[str, int | None]:
        self.data.bind()
        try:
            self.command.bind()
        except PortBindError:
            self.data.close()
            raise
        logger.info("bridge_bound data_port=%s command_port=%s", self.data.port, self.command.port)
        return self.ports

    async def _serve_channel(self, channel: ChannelServer) -> None:
        try:
            await channel.serve()
        finally:
            # One channel going down takes the other with it.
            self.data.request_exit()
            self.command.request_exit()

    async def serve(self) -> None:
        self.bind()
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._serve_channel, self.data)
            tg.start_soon(self._serve_channel, self.command)

    def run(self) -> None:
        anyio.run(self.serve)

    def start_in_thread(self, timeout: float = 5.0) -> Dict[str, int | None]:
        ports = self.bind()
        self._thread = threading.Thread(target=self.run, name="model-bridge", daemon=True)
        self._thread.start()
        deadline = time.monotonic() + timeout
        while not (self.data.started and self.command.started):
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise RuntimeError("Bridge channels did not start")
            time.sleep(0.01)
        return ports

    def stop(self, timeout: float = 5.0) -> None:
        self.data.request_exit()
        self.command.request_exit()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.data.close()
        self.command.close()
        logger.info("bridge_stopped")


def load_model(path: str | None) -> dict | None:
    if not path:
        return None
    with open(path, "r", encoding="utf-8") as handle:
        doc = json.load(handle)
    if not isinstance(doc, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    # Editor files wrap the model in a "root" key.
    if "namespace" not in doc and isinstance(doc.get("root"), dict):
        doc = doc["root"]
    return doc


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = load_config()
    store = ModelStore(load_model(config.model_path))
    bridge = Bridge(store, config)
    try:
        bridge.run()
    except PortBindError as exc:
        logger.error("bridge_start_failed error=%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
