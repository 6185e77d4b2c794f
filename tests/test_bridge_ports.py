import json
import os
import socket
import sys
import tempfile
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

import httpx

from app.bridge import Bridge, PortBindError, bind_with_retry, load_model
from app.config import BridgeConfig
from model_fixtures import sample_model
from model_store import ModelStore
from tool_client import RemoteToolClient


def _listening_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    return sock


class TestPortRetry(unittest.TestCase):
    def test_busy_port_moves_to_next(self) -> None:
        blocker = _listening_socket()
        self.addCleanup(blocker.close)
        busy = blocker.getsockname()[1]
        sock = bind_with_retry("127.0.0.1", busy, attempts=5, delay=0)
        self.addCleanup(sock.close)
        port = sock.getsockname()[1]
        self.assertGreater(port, busy)
        self.assertLess(port, busy + 5)

    def test_gives_up_after_attempts(self) -> None:
        blocker = _listening_socket()
        self.addCleanup(blocker.close)
        busy = blocker.getsockname()[1]
        with self.assertRaises(PortBindError) as ctx:
            bind_with_retry("127.0.0.1", busy, attempts=1, delay=0)
        self.assertEqual(ctx.exception.first_port, busy)

    def test_two_bridges_get_distinct_ports(self) -> None:
        probe = _listening_socket()
        base = probe.getsockname()[1]
        probe.close()
        config = BridgeConfig(data_port=base, command_port=base + 1, port_attempts=10, retry_delay=0)
        first = Bridge(ModelStore(sample_model()), config)
        second = Bridge(ModelStore(), config)
        self.addCleanup(first.stop)
        self.addCleanup(second.stop)

        a = first.bind()
        b = second.bind()
        ports = [a["data"], a["command"], b["data"], b["command"]]
        self.assertEqual(len(set(ports)), 4)
        self.assertNotIn(None, ports)


class TestBridgeServing(unittest.TestCase):
    def test_both_channels_answer(self) -> None:
        probe = _listening_socket()
        base = probe.getsockname()[1]
        probe.close()
        config = BridgeConfig(data_port=base, command_port=base + 1, port_attempts=10, retry_delay=0)
        bridge = Bridge(ModelStore(sample_model()), config)
        ports = bridge.start_in_thread(timeout=10.0)
        self.addCleanup(bridge.stop)

        with httpx.Client(timeout=5.0) as client:
            health = client.get(f"http://127.0.0.1:{ports['data']}/api/health").json()
            self.assertEqual(health["channel"], "data")
            self.assertEqual(health["port"], ports["data"])

            res = client.post(
                f"http://127.0.0.1:{ports['command']}/api/execute-command",
                json={"command": "create_data_object", "args": {"name": "Invoice", "parentObjectName": "Pac"}},
            )
            self.assertTrue(res.json()["success"], res.json())

            res = client.get(f"http://127.0.0.1:{ports['data']}/api/data-objects/Invoice")
            self.assertEqual(res.status_code, 200)

        with RemoteToolClient(config, retry_delay=0) as tools:
            found = tools.discover(timeout=1.0)
            self.assertEqual(found, ports)
            result = tools.invoke("get_data_object", {"name": "Invoice"})
            self.assertTrue(result["success"], result)


class TestLoadModel(unittest.TestCase):
    def test_unwraps_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "app.json")
            with open(path, "w", encoding="utf-8") as handle:
                json.dump({"root": sample_model()}, handle)
            doc = load_model(path)
        self.assertEqual(doc["namespace"][0]["name"], "Main")

    def test_no_path(self) -> None:
        self.assertIsNone(load_model(None))

    def test_rejects_non_object(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "app.json")
            with open(path, "w", encoding="utf-8") as handle:
                json.dump([1, 2], handle)
            with self.assertRaises(ValueError):
                load_model(path)


if __name__ == "__main__":
    unittest.main()
