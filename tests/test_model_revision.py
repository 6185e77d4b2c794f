import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from modelkit.revision import is_revision, model_revision


class TestModelRevision(unittest.TestCase):
    def test_revision_deterministic_with_key_order(self) -> None:
        a = {"b": 1, "a": 2}
        b = {"a": 2, "b": 1}
        self.assertEqual(model_revision(a), model_revision(b))

    def test_revision_differs_for_list_order(self) -> None:
        a = {"prop": [{"name": "A"}, {"name": "B"}]}
        b = {"prop": [{"name": "B"}, {"name": "A"}]}
        self.assertNotEqual(model_revision(a), model_revision(b))

    def test_revision_format(self) -> None:
        rev = model_revision({"a": 1})
        self.assertTrue(rev.startswith("sha256:"))
        self.assertEqual(len(rev), len("sha256:") + 64)
        self.assertTrue(is_revision(rev))
        self.assertFalse(is_revision("sha256:deadbeef"))

    def test_revision_rejects_pos_inf(self) -> None:
        with self.assertRaises(ValueError):
            model_revision({"bad": float("inf")})


if __name__ == "__main__":
    unittest.main()
