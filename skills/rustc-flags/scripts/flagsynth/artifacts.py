from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from utils import ToolState, progress

from .cargo import run_cargo
from .constants import ARTIFACT_EXTENSIONS, ARTIFACT_PATTERN, TARGET_DIR_HINT
from .errors import DependencyBuildFailure, MissingArtifact
from .model import normalize_crate_name

if TYPE_CHECKING:
    from .model import CompilationUnit, UnitGraph
    from .options import SynthesisOptions


ArtifactIndex = Dict[str, Path]


def artifact_rank(path: Path) -> Tuple[int, float, str]:
    """Sort key for competing artifacts of one crate: preferred extension,
    then newest modification time, then name."""
    ext = path.suffix.lstrip(".")
    preference = len(ARTIFACT_EXTENSIONS) - ARTIFACT_EXTENSIONS.index(ext) if ext in ARTIFACT_EXTENSIONS else 0
    try:
        mtime = path.stat().st_mtime
    except OSError:
        mtime = 0.0
    return preference, mtime, path.name


def index_artifacts(output_dir: Path, warnings: Optional[List[str]] = None) -> ArtifactIndex:
    if not output_dir.is_dir():
        raise MissingArtifact(f"Dependency output directory not found: {output_dir}")
    index: ArtifactIndex = {}
    ranks: Dict[str, Tuple[int, float, str]] = {}
    seen: Set[Tuple[str, str]] = set()
    duplicates: Set[str] = set()
    with os.scandir(output_dir) as entries:
        for entry in entries:
            if not entry.is_file():
                continue
            match = ARTIFACT_PATTERN.match(entry.name)
            if not match:
                continue
            name = normalize_crate_name(match.group("name"))
            ext = match.group("ext")
            if (name, ext) in seen:
                duplicates.add(name)
            seen.add((name, ext))
            path = Path(entry.path)
            rank = artifact_rank(path)
            if name not in ranks or rank > ranks[name]:
                ranks[name] = rank
                index[name] = path
    if warnings is not None:
        for name in sorted(duplicates):
            warnings.append(f"Multiple artifacts for {name}; using newest {index[name].name}")
    return index


def missing_artifact_message(crate_name: str, searched: Optional[Path] = None) -> str:
    message = f"missing compiled artifact for dependency {crate_name}"
    if searched is not None:
        message = f"{message} (searched {searched}; {TARGET_DIR_HINT})"
    return message


def lookup_artifact(index: ArtifactIndex, crate_name: str, searched: Optional[Path] = None) -> Path:
    path = index.get(normalize_crate_name(crate_name))
    if path is None:
        raise MissingArtifact(missing_artifact_message(crate_name, searched))
    return path


def check_dependencies(
    options: "SynthesisOptions",
    graph: "UnitGraph",
    unit: "CompilationUnit",
    *,
    warnings: List[str],
    tools: ToolState,
) -> List[str]:
    """Run ``cargo check -p <dep> --lib`` once per linkable dependency package."""
    checked: List[str] = []
    for _, dep_unit in graph.unit_deps(unit):
        if dep_unit.is_build_script or not dep_unit.is_linkable:
            continue
        spec = dep_unit.package.spec()
        if spec in checked:
            continue
        progress(f"Checking dependency {spec}...", tools=tools)
        args = ["check", "-p", spec, "--lib", *options.cargo_build_args()]
        result = run_cargo(options, args, warnings=warnings, tools=tools)
        if result is None:
            raise DependencyBuildFailure(spec, f"Missing tool: {options.cargo}")
        if result.returncode != 0:
            raise DependencyBuildFailure(spec, result.stderr)
        checked.append(spec)
    if checked:
        progress(f"Checked {len(checked)} dependencies", done=True, tools=tools)
    return checked
