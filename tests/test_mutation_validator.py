import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from entity_resolver import EntityResolver
from model_fixtures import sample_model
from model_store import ModelStore
from modelkit.schema import workflow_kind
from mutation_validator import MutationValidator, extract_story_role


def _codes(issues) -> list:
    return [i["code"] for i in issues]


class TestMutationValidator(unittest.TestCase):
    def setUp(self) -> None:
        self.store = ModelStore(sample_model())
        self.resolver = EntityResolver(self.store)
        self.validator = MutationValidator(self.resolver)
        self.customer = self.resolver.resolve_object("Customer")

    def test_new_object_ok(self) -> None:
        self.assertEqual(self.validator.validate_new_object({"name": "Invoice", "parentObjectName": "Pac"}), [])

    def test_new_object_name_rules(self) -> None:
        issues = self.validator.validate_new_object({"name": "invoice", "parentObjectName": "Pac"})
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE"])
        issues = self.validator.validate_new_object({"name": "customer", "parentObjectName": "Pac"})
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE", "NAME_NOT_UNIQUE"])
        self.assertEqual(issues[1]["detail"]["existing"], "Customer")
        issues = self.validator.validate_new_object({"name": "CUSTOMER", "parentObjectName": "Pac"})
        self.assertEqual(_codes(issues), ["NAME_NOT_UNIQUE"])
        self.assertEqual(issues[0]["detail"]["existing"], "Customer")

    def test_new_object_collects_every_issue(self) -> None:
        issues = self.validator.validate_new_object({"name": "Sales Order", "parentObjectName": "pac", "isLookup": "yes"})
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE", "ENUM_INVALID", "PARENT_NOT_FOUND"])

    def test_lookup_parent_rule(self) -> None:
        issues = self.validator.validate_new_object({"name": "Status", "parentObjectName": "Customer", "isLookup": "true"})
        self.assertEqual(_codes(issues), ["LOOKUP_PARENT_INVALID"])
        ok = self.validator.validate_new_object({"name": "Status", "parentObjectName": "Pac", "isLookup": "true"})
        self.assertEqual(ok, [])

    def test_object_update(self) -> None:
        self.assertEqual(self.validator.validate_object_update(self.customer, {"codeDescription": "x"}), [])
        issues = self.validator.validate_object_update(self.customer, {"name": "Client", "prop": [], "parentObjectName": "Customer"})
        self.assertEqual(sorted(_codes(issues)), ["FIELD_NOT_UPDATABLE", "NAME_IMMUTABLE", "PARENT_INVALID"])
        order = self.resolver.resolve_object("Order")
        issues = self.validator.validate_object_update(order, {"isLookup": "true"})
        self.assertEqual(_codes(issues), ["LOOKUP_PARENT_INVALID"])

    def test_object_replacement(self) -> None:
        data = {
            "codeDescription": "All buyers",
            "prop": [{"name": "Email"}, {"name": "EMAIL"}],
            "lookupItem": [],
            "objectWorkflow": [],
        }
        issues = self.validator.validate_object_replacement(self.customer, data)
        self.assertEqual(sorted(_codes(issues)), ["FIELD_NOT_UPDATABLE", "NAME_NOT_UNIQUE"])
        self.assertEqual(self.validator.validate_object_replacement(self.customer, {"prop": [{"name": "Email"}]}), [])

    def test_new_properties(self) -> None:
        props = [
            {"name": "email"},
            {"name": "Fax", "sqlServerDBDataType": "string"},
            {"name": "OwnerID", "isFK": "true", "fkObjectName": "DoesNotExist"},
            {"name": "RegionID", "isFK": "true"},
            {"name": "Notes"},
            {"name": "Notes"},
        ]
        issues = self.validator.validate_new_properties(self.customer, props)
        self.assertEqual(
            _codes(issues),
            [
                "NAME_NOT_PASCAL_CASE",
                "NAME_NOT_UNIQUE",
                "ENUM_INVALID",
                "FK_TARGET_MISSING",
                "FK_TARGET_REQUIRED",
                "NAME_NOT_UNIQUE",
            ],
        )
        self.assertEqual(issues[1]["detail"]["existing"], "Email")
        self.assertEqual(issues[3]["path"], "props[2].fkObjectName")
        self.assertEqual(issues[5]["path"], "props[5].name")

    def test_property_collides_case_insensitively(self) -> None:
        issues = self.validator.validate_new_properties(self.customer, [{"name": "EMAIL"}])
        self.assertEqual(_codes(issues), ["NAME_NOT_UNIQUE"])

    def test_fk_target_is_case_sensitive(self) -> None:
        issues = self.validator.validate_new_properties(
            self.customer, [{"name": "OrderID", "isFK": "true", "fkObjectName": "order"}]
        )
        self.assertEqual(_codes(issues), ["FK_TARGET_MISSING"])

    def test_property_update(self) -> None:
        phone = self.resolver.resolve_property(self.customer, "Phone")
        self.assertEqual(self.validator.validate_property_update(self.customer, phone, {"name": "Mobile"}), [])
        issues = self.validator.validate_property_update(self.customer, phone, {"name": "Email"})
        self.assertEqual(_codes(issues), ["NAME_NOT_UNIQUE"])
        issues = self.validator.validate_property_update(self.customer, phone, {"isFK": "true"})
        self.assertEqual(_codes(issues), ["FK_TARGET_REQUIRED"])

    def test_lookup_value(self) -> None:
        role = self.resolver.resolve_object("Role")
        self.assertEqual(self.validator.validate_lookup_value(role, {"name": "Manager"}), [])
        issues = self.validator.validate_lookup_value(role, {"name": "admin"})
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE", "NAME_NOT_UNIQUE"])
        issues = self.validator.validate_lookup_value(role, {"name": "Admin", "isActive": "no"})
        self.assertEqual(_codes(issues), ["ENUM_INVALID", "NAME_NOT_UNIQUE"])
        issues = self.validator.validate_lookup_value(self.customer, {"name": "Gold"})
        self.assertEqual(_codes(issues), ["NOT_LOOKUP_OBJECT"])

    def test_lookup_value_rename_excludes_itself(self) -> None:
        role = self.resolver.resolve_object("Role")
        admin = self.resolver.resolve_lookup_value(role, "Admin")
        self.assertEqual(self.validator.validate_lookup_value(role, {"name": "Admin"}, existing=admin), [])
        issues = self.validator.validate_lookup_value(role, {"name": "Customer"}, existing=admin)
        self.assertEqual(_codes(issues), ["NAME_NOT_UNIQUE"])

    def test_new_workflow(self) -> None:
        self.assertEqual(self.validator.validate_new_workflow(self.customer, "form", {"name": "CustomerView"}), [])
        issues = self.validator.validate_new_workflow(self.customer, "form", {"name": "customerEdit"})
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE", "NAME_NOT_UNIQUE"])
        issues = self.validator.validate_new_workflow(self.customer, "report", {"name": "RecalcTotals"})
        self.assertEqual(_codes(issues), ["NAME_NOT_UNIQUE"])
        issues = self.validator.validate_new_workflow(self.customer, "form", {"name": "CustomerList", "isPage": "false"})
        self.assertEqual(_codes(issues), ["FIELD_NOT_UPDATABLE"])

    def test_new_workflow_rejects_page_init_suffix(self) -> None:
        issues = self.validator.validate_new_workflow(self.customer, "form", {"name": "ProfileInitObjWF"})
        self.assertEqual(_codes(issues), ["NAME_RESERVED_SUFFIX"])
        self.assertEqual(issues[0]["detail"]["reserved"], ["InitObjWF", "InitReport"])
        issues = self.validator.validate_new_workflow(self.customer, "report", {"name": "SalesInitReport"})
        self.assertEqual(_codes(issues), ["NAME_RESERVED_SUFFIX"])
        issues = self.validator.validate_new_workflow(self.customer, "form", {"name": "CustomerEditInitObjWF"})
        self.assertEqual(_codes(issues), ["NAME_RESERVED_SUFFIX", "NAME_NOT_UNIQUE"])

    def test_property_rename_reports_collision_with_bad_name(self) -> None:
        phone = self.resolver.resolve_property(self.customer, "Phone")
        issues = self.validator.validate_property_update(self.customer, phone, {"name": "email"})
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE", "NAME_NOT_UNIQUE"])

    def test_workflow_update_locks(self) -> None:
        form = self.resolver.resolve_workflow("form", "CustomerEdit")
        self.assertEqual(self.validator.validate_workflow_update(form, {"titleText": "Edit"}), [])
        issues = self.validator.validate_workflow_update(
            form, {"isPage": "false", "objectWorkflowParam": [], "name": "Other"}
        )
        self.assertEqual(_codes(issues), ["FIELD_NOT_UPDATABLE", "FIELD_NOT_UPDATABLE", "NAME_IMMUTABLE"])
        report = self.resolver.resolve_workflow("report", "CustomerList")
        self.assertEqual(self.validator.validate_workflow_update(report, {"isPage": "true"}), [])

    def test_new_element(self) -> None:
        form = self.resolver.resolve_workflow("form", "CustomerEdit")
        form_lists = workflow_kind("form").lists
        element = form_lists["param"]
        self.assertEqual(self.validator.validate_new_element(form, element, {"name": "D"}, "param"), [])
        issues = self.validator.validate_new_element(form, element, {"name": "a"}, "param")
        self.assertEqual(_codes(issues), ["NAME_NOT_PASCAL_CASE", "NAME_NOT_UNIQUE"])
        button = form_lists["button"]
        issues = self.validator.validate_new_element(form, button, {"buttonText": "save", "buttonType": "reset"}, "button")
        self.assertEqual(_codes(issues), ["NAME_NOT_UNIQUE", "ENUM_INVALID"])
        self.assertEqual(self.validator.validate_new_element(form, button, {"buttonText": "Save and close"}, "button"), [])

    def test_user_story(self) -> None:
        texts = ["A Admin wants to view all customers"]
        self.assertEqual(self.validator.validate_user_story({"storyText": "As a Customer, I want to place orders"}, texts), [])
        issues = self.validator.validate_user_story({"storyText": "Customers place orders"}, texts)
        self.assertEqual(_codes(issues), ["STORY_FORMAT_INVALID"])
        issues = self.validator.validate_user_story({"storyText": "A Pirate wants to sail"}, texts)
        self.assertEqual(_codes(issues), ["ROLE_NOT_FOUND"])
        issues = self.validator.validate_user_story({"storyText": "a  admin wants to view ALL customers"}, texts)
        self.assertEqual(_codes(issues), ["STORY_DUPLICATE"])
        issues = self.validator.validate_user_story({"storyText": "  "}, texts)
        self.assertEqual(_codes(issues), ["STORY_TEXT_REQUIRED"])

    def test_extract_story_role(self) -> None:
        self.assertEqual(extract_story_role("A Admin wants to add users"), "Admin")
        self.assertEqual(extract_story_role("A [Sales Rep] wants to log calls"), "Sales Rep")
        self.assertEqual(extract_story_role("As an Admin, I want to add users"), "Admin")
        self.assertIsNone(extract_story_role("Add users"))
        self.assertIsNone(extract_story_role(None))


if __name__ == "__main__":
    unittest.main()
