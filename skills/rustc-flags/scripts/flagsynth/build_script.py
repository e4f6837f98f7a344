from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Tuple, TYPE_CHECKING

from .constants import BUILD_SCRIPT_ENV_PREFIXES
from .model import BuildScriptOutput

if TYPE_CHECKING:
    from .graph import GraphProvider
    from .model import CompilationUnit, UnitGraph


def parse_build_script_output(text: str) -> List[Tuple[str, str]]:
    env: List[Tuple[str, str]] = []
    for raw in text.splitlines():
        line = raw.strip()
        for prefix in BUILD_SCRIPT_ENV_PREFIXES:
            if not line.startswith(prefix):
                continue
            key, sep, value = line[len(prefix):].partition("=")
            if sep and key:
                env.append((key, value))
            break
    return env


def scan_build_script_output(build_dir: Path, package_name: str) -> Optional[BuildScriptOutput]:
    """Find the most recent ``output`` file a build script run left under
    ``<target>/<profile>/build/<package>-<hash>/``."""
    if not build_dir.is_dir():
        return None
    pattern = re.compile(rf"^{re.escape(package_name)}-[0-9a-f]+$")
    candidates: List[Tuple[float, str, Path]] = []
    for entry in build_dir.iterdir():
        if not entry.is_dir() or not pattern.match(entry.name):
            continue
        output = entry / "output"
        if output.is_file():
            candidates.append((output.stat().st_mtime, entry.name, entry))
    if not candidates:
        return None
    _, _, chosen = max(candidates)
    try:
        text = (chosen / "output").read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    out_dir = chosen / "out"
    root_output = chosen / "root-output"
    if root_output.is_file():
        try:
            recorded = root_output.read_text(encoding="utf-8", errors="replace").strip()
        except OSError:
            recorded = ""
        if recorded:
            out_dir = Path(recorded)
    return BuildScriptOutput(out_dir=out_dir, env=parse_build_script_output(text))


def integrate(
    graph: "UnitGraph",
    unit: "CompilationUnit",
    provider: "GraphProvider",
    warnings: List[str],
) -> Optional[BuildScriptOutput]:
    if graph.build_script_unit(unit) is None:
        return None
    output = provider.build_script_output(graph, unit)
    if output is None:
        warnings.append(
            f"No build script output recorded for {unit.package.name}; continuing without OUT_DIR"
        )
    return output
