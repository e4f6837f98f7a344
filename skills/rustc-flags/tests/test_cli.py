import contextlib
import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from cli import main as cli_main
from cli.config import feature_selection_from_args, options_from_args, parse_features
from flagsynth import SynthesizedInvocation, UnitNotFound


def sample_invocation() -> SynthesizedInvocation:
    return SynthesizedInvocation(
        flags=[
            "rustc",
            "--crate-name", "demo",
            "--crate-type", "lib",
            "--sysroot", "/opt/rust",
            "/work/demo/src/lib.rs",
            "--edition=2021",
            "-L", "/work/demo/target/debug/deps",
            "--emit=dep-info,metadata",
            "--cfg", 'feature="extra"',
        ],
        env={"CARGO_PKG_NAME": "demo", "CARGO_MANIFEST_DIR": "/work/my demo"},
        warnings=["No build script output recorded for demo; continuing without OUT_DIR"],
    )


def run_main(argv):
    stdout = io.StringIO()
    stderr = io.StringIO()
    with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
        code = cli_main.main(argv)
    return code, stdout.getvalue(), stderr.getvalue()


class TestConfig(unittest.TestCase):
    def test_parse_features(self):
        self.assertEqual(parse_features(["a,b", "c a", " "]), ("a", "b", "c"))
        self.assertEqual(parse_features(None), ())

    def test_options_from_args(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            manifest = Path(temp_dir) / "Cargo.toml"
            args = cli_main.build_parser().parse_args(
                [
                    "flags",
                    "src/lib.rs",
                    "--manifest-path", str(manifest),
                    "--strategy", "unit-graph",
                    "--profile", "release",
                    "--no-check-deps",
                    "--features", "extra",
                    "--no-default-features",
                ]
            )
            options = options_from_args(args)
            self.assertEqual(options.manifest_path, manifest)
            self.assertEqual(options.strategy, "unit-graph")
            self.assertEqual(options.profile, "release")
            self.assertFalse(options.check_dependencies)
            self.assertIn("--release", options.cargo_build_args())
            selection = feature_selection_from_args(args)
            self.assertEqual(selection.features, ("extra",))
            self.assertTrue(selection.no_default_features)
            self.assertEqual(selection.cargo_args(), ["--no-default-features", "--features", "extra"])


class TestMain(unittest.TestCase):
    def test_json_format(self):
        with patch("cli.main.generate_rustc_flags", return_value=sample_invocation()) as generate:
            code, stdout, stderr = run_main(["flags", "src/lib.rs", "--format", "json", "--lib"])
        self.assertEqual(code, 0)
        payload = json.loads(stdout)
        self.assertEqual(payload["flags"][0], "rustc")
        self.assertEqual(payload["env"]["CARGO_PKG_NAME"], "demo")
        self.assertIn("warning: No build script output", stderr)
        self.assertTrue(generate.call_args.kwargs["lib_only"])

    def test_lines_format(self):
        with patch("cli.main.generate_rustc_flags", return_value=sample_invocation()):
            code, stdout, _ = run_main(["flags", "src/lib.rs", "--format", "lines"])
        self.assertEqual(code, 0)
        lines = stdout.splitlines()
        self.assertEqual(lines[0], "rustc")
        self.assertEqual(lines[-1], 'feature="extra"')

    def test_shell_format_quotes(self):
        with patch("cli.main.generate_rustc_flags", return_value=sample_invocation()):
            code, stdout, _ = run_main(["flags", "src/lib.rs"])
        self.assertEqual(code, 0)
        self.assertIn("CARGO_MANIFEST_DIR='/work/my demo'", stdout)
        self.assertIn("'feature=\"extra\"'", stdout)

    def test_synthesis_error_exit_code(self):
        with patch("cli.main.generate_rustc_flags", side_effect=UnitNotFound("Could not find unit for path x.rs")):
            code, stdout, stderr = run_main(["flags", "x.rs"])
        self.assertEqual(code, 1)
        self.assertEqual(stdout, "")
        self.assertIn("error: Could not find unit for path x.rs", stderr)

    def test_no_command(self):
        code, stdout, _ = run_main([])
        self.assertEqual(code, 1)
        self.assertIn("usage", stdout.lower())

    def test_exec_runs_compiler_with_merged_env(self):
        completed = subprocess.CompletedProcess(["rustc"], 3)
        with patch("cli.main.generate_rustc_flags", return_value=sample_invocation()), patch(
            "cli.main.subprocess.run", return_value=completed
        ) as run:
            code, _, _ = run_main(["exec", "src/lib.rs"])
        self.assertEqual(code, 3)
        cmd = run.call_args.args[0]
        self.assertEqual(cmd[1:], sample_invocation().flags[1:])
        self.assertEqual(run.call_args.kwargs["env"]["CARGO_PKG_NAME"], "demo")
        if "PATH" in os.environ:
            self.assertEqual(run.call_args.kwargs["env"]["PATH"], os.environ["PATH"])


if __name__ == "__main__":
    unittest.main()
