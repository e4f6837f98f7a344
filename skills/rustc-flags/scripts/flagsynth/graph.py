from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar

from utils import ToolState, progress

from .artifacts import check_dependencies, index_artifacts, lookup_artifact, missing_artifact_message
from .build_script import scan_build_script_output
from .cargo import nightly_env, run_cargo
from .constants import STRATEGY_UNIT_GRAPH, UNIT_GRAPH_VERSION
from .errors import GraphAcquisitionFailure, MissingArtifact
from .model import (
    BuildScriptOutput,
    CompilationUnit,
    FeatureSelection,
    PackageId,
    UnitDep,
    UnitGraph,
    parse_package_id,
)
from .options import SynthesisOptions

K = TypeVar("K", bound=Hashable)


def collect_units(roots: Iterable[K], deps_of: Callable[[K], Sequence[K]]) -> List[K]:
    """Post-order walk from ``roots``: every unit appears after its dependencies.

    Each key is visited once, so shared sub-dependencies are emitted once and
    cycles terminate (the back edge is dropped).
    """
    order: List[K] = []
    state: Dict[K, bool] = {}
    stack: List[tuple] = [(root, False) for root in reversed(list(roots))]
    while stack:
        key, expanded = stack.pop()
        if expanded:
            if not state.get(key):
                state[key] = True
                order.append(key)
            continue
        if key in state:
            continue
        state[key] = False
        stack.append((key, True))
        for dep in reversed(list(deps_of(key))):
            if dep not in state:
                stack.append((dep, False))
    return order


def unit_from_target(
    package: PackageId,
    target: Dict[str, Any],
    *,
    features: Iterable[str],
    dependencies: Iterable[UnitDep],
    mode: str,
    manifest_path: Optional[Path] = None,
) -> CompilationUnit:
    src_path = target.get("src_path")
    name = target.get("name")
    if not isinstance(src_path, str) or not isinstance(name, str):
        raise GraphAcquisitionFailure(f"Target of {package.raw} has no name or src_path")
    return CompilationUnit(
        package=package,
        target_name=name,
        kinds=tuple(target.get("kind") or ()),
        crate_types=tuple(target.get("crate_types") or ()),
        src_path=Path(src_path),
        edition=str(target.get("edition") or "2015"),
        features=tuple(dict.fromkeys(features)),
        dependencies=tuple(dependencies),
        mode=mode,
        manifest_path=manifest_path,
    )


def parse_unit_graph(payload: str, warnings: Optional[List[str]] = None) -> UnitGraph:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise GraphAcquisitionFailure(f"Unit graph output is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("units"), list):
        raise GraphAcquisitionFailure("Unit graph output has no units")
    version = data.get("version")
    if version != UNIT_GRAPH_VERSION and warnings is not None:
        warnings.append(f"Unexpected unit graph version {version}; parsing as version {UNIT_GRAPH_VERSION}")
    units: List[CompilationUnit] = []
    for position, entry in enumerate(data["units"]):
        try:
            package = parse_package_id(entry["pkg_id"])
            dependencies = [
                UnitDep(index=int(dep["index"]), extern_crate_name=str(dep["extern_crate_name"]))
                for dep in entry.get("dependencies") or []
            ]
            units.append(
                unit_from_target(
                    package,
                    entry["target"],
                    features=entry.get("features") or [],
                    dependencies=dependencies,
                    mode=str(entry.get("mode") or "check"),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise GraphAcquisitionFailure(f"Malformed unit {position} in unit graph: {exc}") from exc
    try:
        roots = [int(root) for root in data.get("roots") or []]
    except (TypeError, ValueError) as exc:
        raise GraphAcquisitionFailure(f"Malformed unit graph roots: {exc}") from exc
    return UnitGraph(units=units, roots=roots)


class GraphProvider:
    """Acquires the unit graph and answers the per-strategy questions asked
    by the later stages (artifact paths, build script output, layout)."""

    name = ""

    def __init__(self, options: SynthesisOptions, tools: ToolState, warnings: List[str]) -> None:
        self.options = options
        self.tools = tools
        self.warnings = warnings

    def obtain_graph(self, features: FeatureSelection, lib_only: bool) -> UnitGraph:
        raise NotImplementedError

    def deps_dir(self) -> Path:
        return self.options.resolved_target_dir() / self.options.profile_dir / "deps"

    def build_dir(self) -> Path:
        return self.deps_dir().parent / "build"

    def prepare(self, graph: UnitGraph, unit: CompilationUnit) -> None:
        return None

    def extern_artifact(self, graph: UnitGraph, dep_unit: CompilationUnit) -> Path:
        raise NotImplementedError

    def build_script_output(self, graph: UnitGraph, unit: CompilationUnit) -> Optional[BuildScriptOutput]:
        raise NotImplementedError

    def manifest_dir(self, unit: CompilationUnit) -> Optional[Path]:
        if unit.manifest_path is not None:
            return unit.manifest_path.parent
        return unit.package.manifest_dir()


class UnitGraphProvider(GraphProvider):
    """External-process strategy built on ``cargo --unit-graph``."""

    name = STRATEGY_UNIT_GRAPH

    def __init__(self, options: SynthesisOptions, tools: ToolState, warnings: List[str]) -> None:
        super().__init__(options, tools, warnings)
        self._index: Optional[Dict[str, Path]] = None

    def obtain_graph(self, features: FeatureSelection, lib_only: bool) -> UnitGraph:
        progress("Requesting unit graph from cargo...", tools=self.tools)
        args = ["check", "--unit-graph", "-Z", "unstable-options"]
        args.extend(self.options.cargo_build_args())
        args.extend(features.cargo_args())
        if lib_only:
            args.append("--lib")
        result = run_cargo(self.options, args, warnings=self.warnings, tools=self.tools, env=nightly_env())
        if result is None:
            raise GraphAcquisitionFailure(f"Missing tool: {self.options.cargo}")
        if result.returncode != 0:
            raise GraphAcquisitionFailure(
                f"cargo --unit-graph exited with {result.returncode}:\n{(result.stderr or '').strip()}"
            )
        graph = parse_unit_graph(result.stdout or "", self.warnings)
        progress(f"Unit graph has {len(graph.units)} units", done=True, tools=self.tools)
        return graph

    def prepare(self, graph: UnitGraph, unit: CompilationUnit) -> None:
        if self.options.check_dependencies:
            check_dependencies(self.options, graph, unit, warnings=self.warnings, tools=self.tools)
        self._index = None

    def extern_artifact(self, graph: UnitGraph, dep_unit: CompilationUnit) -> Path:
        if self._index is None:
            try:
                self._index = index_artifacts(self.deps_dir(), self.warnings)
            except MissingArtifact as exc:
                raise MissingArtifact(missing_artifact_message(dep_unit.crate_name, self.deps_dir())) from exc
        return lookup_artifact(self._index, dep_unit.crate_name, self.deps_dir())

    def build_script_output(self, graph: UnitGraph, unit: CompilationUnit) -> Optional[BuildScriptOutput]:
        # cargo does not report build script results alongside the unit graph;
        # whatever a previous build left on disk is the best available answer.
        return scan_build_script_output(self.build_dir(), unit.package.name)
