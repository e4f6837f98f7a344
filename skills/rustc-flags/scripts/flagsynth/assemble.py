from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, TYPE_CHECKING

from .constants import EMIT_METADATA_ONLY, PROGRAM_NAME
from .model import BuildScriptOutput, CompilationUnit, SynthesizedInvocation, UnitGraph

if TYPE_CHECKING:
    from .graph import GraphProvider


def unit_flags(unit: CompilationUnit, sysroot: str, deps_dir: Path) -> List[str]:
    # Only the first crate type is passed; multi-type targets get one of them.
    return [
        PROGRAM_NAME,
        "--crate-name", unit.crate_name,
        "--crate-type", unit.crate_types[0] if unit.crate_types else "lib",
        "--sysroot", sysroot,
        # always the crate root, never the file that was asked about
        str(unit.src_path),
        f"--edition={unit.edition}",
        "-L", str(deps_dir),
        EMIT_METADATA_ONLY,
    ]


def feature_flags(unit: CompilationUnit) -> List[str]:
    flags: List[str] = []
    for feature in unit.features:
        flags.extend(["--cfg", f'feature="{feature}"'])
    return flags


def extern_flags(graph: UnitGraph, unit: CompilationUnit, provider: "GraphProvider") -> List[str]:
    flags: List[str] = []
    seen = set()
    for dep, dep_unit in graph.unit_deps(unit):
        if dep_unit.is_build_script or not dep_unit.is_linkable:
            continue
        if dep.extern_crate_name in seen:
            continue
        seen.add(dep.extern_crate_name)
        path = provider.extern_artifact(graph, dep_unit)
        flags.extend(["--extern", f"{dep.extern_crate_name}={path}"])
    return flags


def base_env(unit: CompilationUnit, manifest_dir: Optional[Path]) -> Dict[str, str]:
    package = unit.package
    env = {
        "CARGO_PKG_NAME": package.name,
        "CARGO_PKG_VERSION": package.version,
        "CARGO_CRATE_NAME": unit.crate_name,
    }
    parts = package.version_parts()
    if parts is not None:
        major, minor, patch, pre = parts
        env["CARGO_PKG_VERSION_MAJOR"] = major
        env["CARGO_PKG_VERSION_MINOR"] = minor
        env["CARGO_PKG_VERSION_PATCH"] = patch
        env["CARGO_PKG_VERSION_PRE"] = pre
    if manifest_dir is not None:
        env["CARGO_MANIFEST_DIR"] = str(manifest_dir)
    return env


def merge_build_script_env(env: Dict[str, str], output: Optional[BuildScriptOutput]) -> Dict[str, str]:
    merged = dict(env)
    if output is None:
        return merged
    if output.out_dir is not None:
        merged["OUT_DIR"] = str(output.out_dir)
    for key, value in output.env:
        merged[key] = value
    return merged


def assemble(
    unit: CompilationUnit,
    sysroot: str,
    graph: UnitGraph,
    provider: "GraphProvider",
    build_output: Optional[BuildScriptOutput] = None,
) -> SynthesizedInvocation:
    flags = unit_flags(unit, sysroot, provider.deps_dir())
    flags.extend(feature_flags(unit))
    flags.extend(extern_flags(graph, unit, provider))
    env = merge_build_script_env(base_env(unit, provider.manifest_dir(unit)), build_output)
    return SynthesizedInvocation(flags=flags, env=env)
