from __future__ import annotations

from pathlib import Path
from typing import List, Union

from .errors import AmbiguousUnit, UnitNotFound
from .model import CompilationUnit, UnitGraph


def normalize_source_path(source_path: Union[str, Path]) -> Path:
    return Path(source_path).absolute().resolve()


def contains(directory: Path, path: Path) -> bool:
    return directory == path or directory in path.parents


def candidate_units(graph: UnitGraph, source_path: Union[str, Path]) -> List[CompilationUnit]:
    path = normalize_source_path(source_path)
    candidates: List[CompilationUnit] = []
    for unit in graph.units:
        # build.rs sits in the package root and would otherwise claim every file
        if unit.is_build_script:
            continue
        if contains(normalize_source_path(unit.src_dir), path):
            candidates.append(unit)
    return candidates


def locate(graph: UnitGraph, source_path: Union[str, Path]) -> CompilationUnit:
    candidates = candidate_units(graph, source_path)
    if not candidates:
        raise UnitNotFound(f"Could not find unit for path {source_path}")
    if len(candidates) == 1:
        return candidates[0]
    for unit in candidates:
        if unit.is_library:
            return unit
    names = ", ".join(unit.describe() for unit in candidates)
    raise AmbiguousUnit(f"No lib target among {len(candidates)} candidate units for {source_path}: {names}")
