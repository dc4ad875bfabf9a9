import io
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock


REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
sys.path.insert(0, SRC_ROOT)
sys.path.insert(0, os.path.dirname(__file__))


from brogen.cli import main  # noqa: E402
from tree_builders import HEADER  # noqa: E402


TREE = f"""
kind: translation_unit
children:
  - kind: struct_decl
    spelling: DemoPoint
    location: {{file: {HEADER}, line: 3, column: 1, offset: 40}}
    children:
      - {{kind: field_decl, spelling: x, type: {{kind: double, spelling: double}}}}
"""


class CliTests(unittest.TestCase):
    def _run(self, *argv: str) -> str:
        out = io.StringIO()
        with mock.patch.object(sys, "argv", ["brogen", *argv]), redirect_stdout(out):
            main()
        return out.getvalue()

    def test_tree_yaml_run_prints_counts_and_suggestions(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "demo.yaml").write_text("framework: Demo\n", encoding="utf-8")
            (root / "tree.yaml").write_text(TREE, encoding="utf-8")

            output = self._run(str(root / "demo.yaml"), str(root / "tree.yaml"), "--tree-yaml", "--suggestions")

        lines = output.splitlines()
        self.assertIn("structs: 1", lines)
        self.assertIn("functions: 0", lines)
        self.assertIn("no warnings", lines)
        self.assertIn("# potentially missing configuration entries", lines)
        self.assertIn("  DemoPoint: {}", lines)

    def test_missing_config_exits_with_error(self) -> None:
        err = io.StringIO()
        with tempfile.TemporaryDirectory() as tmp:
            missing = str(Path(tmp) / "missing.yaml")
            with redirect_stderr(err), self.assertRaises(SystemExit) as ctx:
                self._run(missing, str(Path(tmp) / "tree.yaml"), "--tree-yaml")

        self.assertEqual(ctx.exception.code, 1)
        self.assertTrue(err.getvalue().startswith("error: "))


if __name__ == "__main__":
    unittest.main()
