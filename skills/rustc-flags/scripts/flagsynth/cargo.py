from __future__ import annotations

import json
import os
import subprocess
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from utils import ToolState, run_cmd

from .options import SynthesisOptions


def run_cargo(
    options: SynthesisOptions,
    args: Sequence[str],
    *,
    warnings: List[str],
    tools: ToolState,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[subprocess.CompletedProcess]:
    cmd = [options.cargo, *args, "--manifest-path", str(options.manifest_path)]
    return run_cmd(cmd, cwd=options.manifest_dir, warnings=warnings, tools=tools, capture=True, env=env)


def nightly_env() -> Dict[str, str]:
    """Child environment that lets a stable cargo accept ``-Z`` flags."""
    env = dict(os.environ)
    env["RUSTC_BOOTSTRAP"] = "1"
    return env


def iter_json_messages(stdout: Optional[str]) -> Iterator[Dict[str, Any]]:
    for line in (stdout or "").splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            yield payload
