import unittest
import io
import json
import os
import sys
import tempfile
from contextlib import redirect_stderr, redirect_stdout

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from safecpp.cli import OK_MESSAGE, main, parse_defines
from safecpp.diagnostics import SafeCppError

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")


def fixture(name):
    return os.path.join(MOCK_PROJECT, name)


def run(*argv):
    """Run the CLI and return (exit_code, stdout, stderr)."""
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        try:
            code = main(list(argv))
        except SystemExit as e:
            code = e.code
    return code, out.getvalue(), err.getvalue()


class TestCli(unittest.TestCase):

    def test_clean_file_exits_zero(self):
        code, out, _ = run(fixture("clean.cpp"))
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), OK_MESSAGE)

    def test_issue_exits_one(self):
        code, out, _ = run(fixture("bounds.cpp"))
        self.assertEqual(code, 1)
        self.assertTrue(out.startswith("Error: OutOfBounds: "), out)
        self.assertEqual(len(out.strip().splitlines()), 1)

    def test_all_lists_every_diagnostic(self):
        code, out, _ = run(fixture("lifecycle.cpp"), "--all")
        self.assertEqual(code, 1)
        errors = [line for line in out.splitlines() if line.startswith("Error: ")]
        self.assertEqual(len(errors), 2)

    def test_no_preprocess(self):
        code, out, _ = run(fixture("bounds.cpp"), "--no-preprocess")
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), OK_MESSAGE)

    def test_include_and_define_flags(self):
        code, _, _ = run(fixture("buffers.c"), "-I", fixture("include"))
        self.assertEqual(code, 1)
        code, _, _ = run(fixture("feature_flags.c"), "-D", "DEBUG_ENABLED")
        self.assertEqual(code, 1)
        code, _, _ = run(fixture("feature_flags.c"))
        self.assertEqual(code, 0)

    def test_json_output(self):
        code, out, _ = run(fixture("lifecycle.cpp"), "--json")
        self.assertEqual(code, 1)
        data = json.loads(out)
        self.assertEqual([d["kind"] for d in data["diagnostics"]], ["DoubleFree", "DoubleFree"])
        self.assertEqual(data["checkers"], ["array-bounds", "memory-lifecycle", "pointer-state"])

    def test_missing_file(self):
        code, out, err = run(fixture("nope.cpp"))
        self.assertEqual(code, 1)
        self.assertIn("File not found", err)
        self.assertEqual(out, "")

    def test_strict_syntax_error(self):
        with tempfile.NamedTemporaryFile("w", suffix=".c", delete=False) as f:
            f.write("int main( { return 0; }\n")
        try:
            code, _, err = run(f.name, "--strict", "--no-preprocess")
            self.assertEqual(code, 1)
            self.assertIn("Syntax error", err)
        finally:
            os.unlink(f.name)

    def test_config_flag(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = os.path.join(tmp, "safecpp.toml")
            with open(config, "w") as f:
                f.write("preprocess = false\n")
            code, _, _ = run(fixture("bounds.cpp"), "--config", config)
            self.assertEqual(code, 0)

            code, _, err = run(fixture("bounds.cpp"), "--config", os.path.join(tmp, "missing.toml"))
            self.assertEqual(code, 1)
            self.assertIn("Config file not found", err)

    def test_usage_errors_exit_one(self):
        code, _, err = run()
        self.assertEqual(code, 1)
        self.assertIn("usage", err)

        code, _, _ = run("--no-such-flag", fixture("clean.cpp"))
        self.assertEqual(code, 1)

    def test_explain(self):
        code, out, _ = run("--explain", "DoubleFree")
        self.assertEqual(code, 0)
        self.assertIn("Memory released twice", out)

    def test_parse_defines(self):
        self.assertEqual(parse_defines(["A", "B=2", "C="]), {"A": "1", "B": "2", "C": ""})
        with self.assertRaises(SafeCppError):
            parse_defines(["=3"])


if __name__ == "__main__":
    unittest.main()
