import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from modelkit.names import display_text, is_pascal_case, names_match, normalize_name
from modelkit.schema import (
    SQL_DATA_TYPES,
    allowed_values,
    entity_schema,
    is_form,
    is_general_flow,
    is_page_init_flow,
    is_page_init_name,
    page_init_flow_name,
    schema_kinds,
    workflow_kind,
)


class TestNames(unittest.TestCase):
    def test_normalize_drops_whitespace_and_case(self) -> None:
        self.assertEqual(normalize_name(" Customer  Order "), "customerorder")
        self.assertEqual(normalize_name(None), "")

    def test_names_match(self) -> None:
        self.assertTrue(names_match("CustomerOrder", "customer order"))
        self.assertFalse(names_match("", ""))
        self.assertFalse(names_match("Customer", "Customers"))

    def test_pascal_case(self) -> None:
        self.assertTrue(is_pascal_case("Invoice2"))
        self.assertFalse(is_pascal_case("invoice"))
        self.assertFalse(is_pascal_case("Sales Order"))
        self.assertFalse(is_pascal_case("Sales_Order"))

    def test_display_text(self) -> None:
        self.assertEqual(display_text("CustomerOrder"), "Customer Order")
        self.assertEqual(display_text("XMLParserRole"), "XML Parser Role")
        self.assertEqual(display_text(""), "")


class TestWorkflowKinds(unittest.TestCase):
    def test_classification(self) -> None:
        form = {"name": "CustomerEdit", "isPage": "true"}
        init = {"name": "CustomerEditInitObjWF", "isPage": "false"}
        flow = {"name": "Recalc", "isPage": "false"}
        dyna = {"name": "Batch", "isPage": "false", "isDynaFlow": "true"}
        self.assertTrue(is_form(form))
        self.assertFalse(is_form(init))
        self.assertTrue(is_page_init_flow(init))
        self.assertTrue(is_general_flow(flow))
        self.assertFalse(is_general_flow(init))
        self.assertFalse(is_general_flow(dyna))

    def test_init_flow_names(self) -> None:
        self.assertEqual(page_init_flow_name("CustomerEdit", "form"), "CustomerEditInitObjWF")
        self.assertEqual(page_init_flow_name("CustomerList", "report"), "CustomerListInitReport")
        self.assertTrue(is_page_init_name("SalesINITREPORT"))
        self.assertFalse(is_page_init_name("InitObjWFEditor"))
        self.assertFalse(is_page_init_name(None))

    def test_unknown_kind(self) -> None:
        with self.assertRaises(KeyError):
            workflow_kind("dashboard")

    def test_report_lists(self) -> None:
        self.assertEqual(sorted(workflow_kind("report").lists), ["button", "column", "param"])
        self.assertEqual(workflow_kind("form").lists["button"].identity, "buttonText")


class TestFieldSchemas(unittest.TestCase):
    def test_allowed_values(self) -> None:
        self.assertEqual(allowed_values("sqlServerDBDataType"), SQL_DATA_TYPES)
        self.assertEqual(allowed_values("isLookup"), ("true", "false"))
        self.assertEqual(allowed_values("forceDBColumnIndex"), ("true", "false"))
        self.assertIn("", allowed_values("isNotPublishedToSubscriptions"))
        self.assertIsNone(allowed_values("labelText"))
        self.assertIsNone(allowed_values("issueDate"))

    def test_entity_schema_carries_enums(self) -> None:
        schema = entity_schema("property")
        self.assertEqual(schema["required"], ["name"])
        self.assertEqual(schema["properties"]["isFK"]["enum"], ["true", "false"])
        self.assertNotIn("enum", schema["properties"]["labelText"])

    def test_unknown_schema(self) -> None:
        self.assertIsNone(entity_schema("widget"))
        self.assertIn("form_button", schema_kinds())


if __name__ == "__main__":
    unittest.main()
