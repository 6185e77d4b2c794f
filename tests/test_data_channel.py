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

from app.data_channel import create_data_app
from model_fixtures import sample_model
from model_store import ModelStore


class TestDataChannel(unittest.TestCase):
    def setUp(self) -> None:
        self.store = ModelStore(sample_model())
        self.client = TestClient(create_data_app(self.store, lambda: 3001))
        self.addCleanup(self.client.close)

    def test_health(self) -> None:
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"success": True, "status": "ok", "channel": "data", "port": 3001})

    def test_reads_are_idempotent(self) -> None:
        head = self.store.revision
        first = self.client.get("/api/objects").json()
        second = self.client.get("/api/objects").json()
        self.assertEqual(first, second)
        self.assertEqual(first["count"], 4)
        self.assertEqual(self.store.revision, head)
        self.assertFalse(self.store.dirty)

    def test_model_and_status(self) -> None:
        model = self.client.get("/api/model").json()["model"]
        self.assertEqual(model, self.store.get_model())
        status = self.client.get("/api/model/status").json()
        self.assertEqual(status["revision"], self.store.revision)
        self.assertEqual(status["object_count"], 4)

    def test_data_object_filters(self) -> None:
        body = self.client.get("/api/data-objects", params={"is_lookup": "true"}).json()
        self.assertEqual([o["name"] for o in body["data_objects"]], ["Role"])
        self.assertIs(body["data_objects"][0]["isLookup"], True)
        body = self.client.get("/api/data-objects", params={"search": "cust"}).json()
        self.assertEqual([o["name"] for o in body["data_objects"]], ["Customer"])
        self.assertEqual(body["data_objects"][0]["propCount"], 2)

    def test_data_object_by_name(self) -> None:
        res = self.client.get("/api/data-objects/customer")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["data_object"]["name"], "Customer")
        res = self.client.get("/api/data-objects/Ghost")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["error_code"], "NotFound")
        self.assertEqual(res.json()["errors"][0]["code"], "DATA_OBJECT_NOT_FOUND")

    def test_data_objects_full(self) -> None:
        body = self.client.get("/api/data-objects-full").json()
        order = [o for o in body["data_objects"] if o["name"] == "Order"][0]
        self.assertEqual(order["prop"][0]["fkObjectName"], "Customer")

    def test_usage(self) -> None:
        body = self.client.get("/api/data-object-usage/Customer").json()
        kinds = {(u["referenceType"], u["referencedBy"]) for u in body["usage"]}
        self.assertIn(("Form Owner Object", "CustomerEdit"), kinds)
        self.assertIn(("Report Owner Object", "CustomerList"), kinds)
        self.assertIn(("Report Column Source Object", "CustomerList"), kinds)
        self.assertIn(("Property Foreign Key", "Order.CustomerID"), kinds)
        self.assertIn(("Page Init Workflow Owner Object", "CustomerEditInitObjWF"), kinds)

        body = self.client.get("/api/data-object-usage/Order").json()
        kinds = {u["referenceType"] for u in body["usage"]}
        self.assertIn("Report Target Object", kinds)

        self.assertEqual(self.client.get("/api/data-object-usage/Ghost").status_code, 404)
        everything = self.client.get("/api/data-object-usage").json()
        self.assertGreater(everything["count"], body["count"])

    def test_forms_flag_ambiguity(self) -> None:
        body = self.client.get("/api/forms", params={"form_name": "Details"}).json()
        self.assertEqual(body["count"], 2)
        self.assertTrue(body["ambiguous"])
        body = self.client.get("/api/forms", params={"form_name": "Details", "owner_object_name": "Order"}).json()
        self.assertEqual(body["count"], 1)
        self.assertNotIn("ambiguous", body)
        names = [f["name"] for f in self.client.get("/api/forms").json()["forms"]]
        self.assertEqual(names, ["CustomerEdit", "Details", "Details"])

    def test_workflow_kinds(self) -> None:
        flows = self.client.get("/api/general-flows").json()["general_flows"]
        self.assertEqual([f["name"] for f in flows], ["RecalcTotals"])
        summary = self.client.get("/api/general-flows-summary").json()["general_flows"][0]
        self.assertEqual(summary["paramCount"], 1)
        self.assertEqual(summary["roleRequired"], "Public")
        inits = self.client.get("/api/page-init-flows").json()["page_init_flows"]
        self.assertEqual([f["name"] for f in inits], ["CustomerEditInitObjWF"])
        reports = self.client.get("/api/reports", params={"owner_object_name": "customer"}).json()
        self.assertEqual(reports["count"], 1)

    def test_pages(self) -> None:
        body = self.client.get("/api/pages").json()
        self.assertEqual(body["count"], 4)
        body = self.client.get("/api/pages", params={"page_type": "report"}).json()
        self.assertEqual([p["_pageType"] for p in body["pages"]], ["report"])
        res = self.client.get("/api/pages", params={"page_type": "widget"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["error_code"], "BadRequest")

    def test_lookup_values_roles_and_stories(self) -> None:
        self.assertEqual(self.client.get("/api/lookup-values").status_code, 400)
        self.assertEqual(self.client.get("/api/lookup-values", params={"data_object_name": "Ghost"}).status_code, 404)
        values = self.client.get("/api/lookup-values", params={"data_object_name": "Role"}).json()
        self.assertEqual(values["count"], 2)
        roles = self.client.get("/api/roles").json()
        self.assertEqual([r["name"] for r in roles["roles"]], ["Admin", "Customer"])
        stories = self.client.get("/api/user-stories").json()
        self.assertEqual(stories["user_stories"][0]["storyNumber"], "1")

    def test_schemas(self) -> None:
        body = self.client.get("/api/schemas/report_column").json()
        self.assertEqual(body["schema"]["kind"], "report_column")
        res = self.client.get("/api/schemas/widget")
        self.assertEqual(res.status_code, 404)
        self.assertIn("form", res.json()["errors"][0]["detail"]["available"])

    def test_channel_is_read_only(self) -> None:
        res = self.client.post("/api/model", json={"namespace": []})
        self.assertEqual(res.status_code, 404)
        self.assertEqual(self.store.status()["object_count"], 4)


if __name__ == "__main__":
    unittest.main()
