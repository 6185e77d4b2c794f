import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from fastapi.testclient import TestClient

from app.command_channel import create_command_app
from app.data_channel import create_data_app
from command_dispatcher import CommandDispatcher
from model_fixtures import sample_model
from model_store import ModelStore


class TestCommandChannel(unittest.TestCase):
    def setUp(self) -> None:
        self.store = ModelStore(sample_model())
        self.client = TestClient(create_command_app(CommandDispatcher(self.store), lambda: 3002))
        self.data = TestClient(create_data_app(self.store))
        self.addCleanup(self.client.close)
        self.addCleanup(self.data.close)

    def _execute(self, command: str, args: dict):
        return self.client.post("/api/execute-command", json={"command": command, "args": args})

    def test_health(self) -> None:
        body = self.client.get("/api/health").json()
        self.assertEqual(body["channel"], "command")
        self.assertEqual(body["port"], 3002)

    def test_commands_listing(self) -> None:
        commands = {c["name"]: c for c in self.client.get("/api/commands").json()["commands"]}
        self.assertTrue(commands["create_data_object"]["args"]["name"]["required"])
        self.assertTrue(commands["move_form_param"]["mutating"])

    def test_mutation_is_visible_on_data_channel(self) -> None:
        res = self._execute("create_data_object", {"name": "Invoice", "parentObjectName": "Pac"})
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["success"])
        self.assertIn("message", res.json())
        res = self.data.get("/api/data-objects/Invoice")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["data_object"]["parentObjectName"], "Pac")

    def test_arguments_alias(self) -> None:
        res = self.client.post(
            "/api/execute-command",
            json={"command": "add_role", "arguments": {"role": {"name": "Manager"}}},
        )
        self.assertEqual(res.status_code, 200, res.json())
        self.assertEqual(self.data.get("/api/roles").json()["count"], 3)

    def test_status_codes(self) -> None:
        res = self._execute("create_data_object", {"name": "Customer", "parentObjectName": "Pac"})
        self.assertEqual(res.status_code, 422)
        self.assertEqual(res.json()["error_code"], "ValidationFailed")

        res = self._execute("update_data_object", {"data_object_name": "Ghost", "fields": {}})
        self.assertEqual(res.status_code, 404)

        res = self._execute("move_form_param", {"form_name": "CustomerEdit", "param_name": "A", "new_position": 9})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["error_code"], "BoundsError")

        res = self._execute("no_such_command", {})
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["errors"][0]["code"], "COMMAND_NOT_FOUND")

    def test_malformed_requests(self) -> None:
        res = self.client.post("/api/execute-command", json=["create_data_object"])
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["errors"][0]["code"], "BODY_INVALID")

        res = self.client.post("/api/execute-command", json={"args": {}})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["errors"][0]["code"], "COMMAND_REQUIRED")

        res = self.client.post("/api/execute-command")
        self.assertEqual(res.status_code, 400)

    def test_execute_requires_post(self) -> None:
        res = self.client.get("/api/execute-command")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["errors"][0]["code"], "ROUTE_NOT_FOUND")

    def test_rejected_mutation_leaves_model_untouched(self) -> None:
        before = self.data.get("/api/model").json()["model"]
        self._execute(
            "add_data_object_props",
            {"data_object_name": "Customer", "props": [{"name": "OwnerID", "isFK": "true", "fkObjectName": "Nope"}]},
        )
        self.assertEqual(self.data.get("/api/model").json()["model"], before)
        self.assertFalse(self.data.get("/api/model/status").json()["dirty"])


if __name__ == "__main__":
    unittest.main()
