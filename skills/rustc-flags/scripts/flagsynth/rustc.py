from __future__ import annotations

from typing import List, Optional

from utils import ToolState, first_line, run_cmd

from .errors import CompilerQueryFailure


def query_sysroot(rustc: str, *, warnings: List[str], tools: ToolState) -> str:
    result = run_cmd([rustc, "--print", "sysroot"], cwd=None, warnings=warnings, tools=tools, capture=True)
    if result is None:
        raise CompilerQueryFailure(f"Missing tool: {rustc}")
    if result.returncode != 0:
        raise CompilerQueryFailure(
            f"{rustc} --print sysroot exited with {result.returncode}: {first_line(result.stderr)}"
        )
    sysroot = (result.stdout or "").strip()
    if not sysroot or "\n" in sysroot:
        raise CompilerQueryFailure(f"Unexpected output from {rustc} --print sysroot: {result.stdout!r}")
    return sysroot


def query_host_triple(rustc: str, *, warnings: List[str], tools: ToolState) -> Optional[str]:
    result = run_cmd([rustc, "-vV"], cwd=None, warnings=warnings, tools=tools, capture=True)
    if result is None or result.returncode != 0:
        return None
    for line in (result.stdout or "").splitlines():
        if line.startswith("host:"):
            host = line.split(":", 1)[1].strip()
            return host or None
    return None
