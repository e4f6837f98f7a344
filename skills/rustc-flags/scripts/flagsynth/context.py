from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from utils import ToolState, progress

from .artifacts import artifact_rank, index_artifacts, lookup_artifact, missing_artifact_message
from .build_script import scan_build_script_output
from .cargo import iter_json_messages, run_cargo
from .constants import (
    BUILD_SCRIPT_EXTERN,
    BUILD_SCRIPT_KIND,
    LINKABLE_CRATE_TYPES,
    METADATA_FORMAT_VERSION,
    ROOT_TARGET_KINDS,
    STRATEGY_CONTEXT,
)
from .errors import DependencyBuildFailure, GraphAcquisitionFailure, MissingArtifact
from .graph import GraphProvider, collect_units, unit_from_target
from .model import (
    BuildScriptOutput,
    CompilationUnit,
    FeatureSelection,
    UnitDep,
    UnitGraph,
    normalize_crate_name,
    parse_package_id,
)
from .options import SynthesisOptions
from .rustc import query_host_triple

# (package id, first target kind, target name); a lib and a bin often share a name.
UnitKey = Tuple[str, str, str]


def is_lib_target(target: Dict[str, Any]) -> bool:
    return any(kind in LINKABLE_CRATE_TYPES for kind in target.get("crate_types") or ())


def is_build_script_target(target: Dict[str, Any]) -> bool:
    return BUILD_SCRIPT_KIND in (target.get("kind") or ())


def target_key(package_id: str, target: Dict[str, Any]) -> UnitKey:
    kinds = target.get("kind") or [""]
    return package_id, str(kinds[0]), str(target.get("name"))


def unit_key(unit: CompilationUnit) -> UnitKey:
    return unit.package.raw, unit.kinds[0] if unit.kinds else "", unit.target_name


@dataclass
class BuildContext:
    """Workspace model from ``cargo metadata`` plus whatever the executor
    step (a ``cargo check`` message stream) has reported so far."""

    metadata: Dict[str, Any]
    packages: Dict[str, Dict[str, Any]]
    nodes: Dict[str, Dict[str, Any]]
    artifacts: Dict[UnitKey, List[Path]] = field(default_factory=dict)
    build_scripts: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "BuildContext":
        resolve = metadata.get("resolve")
        if not isinstance(resolve, dict):
            raise GraphAcquisitionFailure("cargo metadata reported no dependency resolution")
        packages = {pkg["id"]: pkg for pkg in metadata.get("packages") or [] if isinstance(pkg, dict) and "id" in pkg}
        nodes = {node["id"]: node for node in resolve.get("nodes") or [] if isinstance(node, dict) and "id" in node}
        return cls(metadata=metadata, packages=packages, nodes=nodes)

    @property
    def target_directory(self) -> Optional[Path]:
        value = self.metadata.get("target_directory")
        return Path(value) if isinstance(value, str) and value else None

    def workspace_members(self) -> List[str]:
        return list(self.metadata.get("workspace_members") or [])

    def root_package_ids(self) -> List[str]:
        return list(self.metadata.get("workspace_default_members") or self.workspace_members())

    def target(self, key: UnitKey) -> Dict[str, Any]:
        package_id = key[0]
        for target in self.packages.get(package_id, {}).get("targets") or []:
            if target_key(package_id, target) == key:
                return target
        raise GraphAcquisitionFailure(f"Package {package_id} has no {key[1]} target {key[2]}")

    def lib_target(self, package_id: str) -> Optional[Dict[str, Any]]:
        for target in self.packages.get(package_id, {}).get("targets") or []:
            if is_lib_target(target):
                return target
        return None

    def build_script_target(self, package_id: str) -> Optional[Dict[str, Any]]:
        for target in self.packages.get(package_id, {}).get("targets") or []:
            if is_build_script_target(target):
                return target
        return None

    def root_keys(self, lib_only: bool) -> List[UnitKey]:
        keys: List[UnitKey] = []
        for package_id in self.root_package_ids():
            for target in self.packages.get(package_id, {}).get("targets") or []:
                kinds = set(target.get("kind") or ())
                if lib_only and not is_lib_target(target):
                    continue
                if kinds & ROOT_TARGET_KINDS:
                    keys.append(target_key(package_id, target))
        return list(dict.fromkeys(keys))

    def unit_deps(self, key: UnitKey) -> List[Tuple[UnitKey, str]]:
        package_id = key[0]
        target = self.target(key)
        build_script = is_build_script_target(target)
        wanted = {"build"} if build_script else {None, "normal"}
        deps: List[Tuple[UnitKey, str]] = []
        for dep in self.nodes.get(package_id, {}).get("deps") or []:
            dep_kinds = dep.get("dep_kinds") or [{"kind": None}]
            if not any(kind.get("kind") in wanted for kind in dep_kinds):
                continue
            lib = self.lib_target(dep.get("pkg", ""))
            if lib is None:
                continue
            deps.append((target_key(dep["pkg"], lib), dep.get("name") or normalize_crate_name(lib["name"])))
        if not build_script:
            own_lib = self.lib_target(package_id)
            if own_lib is not None and target_key(package_id, own_lib) != key:
                deps.append((target_key(package_id, own_lib), normalize_crate_name(own_lib["name"])))
            script = self.build_script_target(package_id)
            if script is not None:
                deps.append((target_key(package_id, script), BUILD_SCRIPT_EXTERN))
        unique: Dict[UnitKey, str] = {}
        for dep_key, extern_name in deps:
            unique.setdefault(dep_key, extern_name)
        return list(unique.items())

    def record(self, message: Dict[str, Any]) -> None:
        reason = message.get("reason")
        package_id = message.get("package_id")
        if not isinstance(package_id, str):
            return
        if reason == "compiler-artifact":
            known = self.artifacts.setdefault(target_key(package_id, message.get("target") or {}), [])
            for filename in message.get("filenames") or []:
                path = Path(filename)
                if path not in known:
                    known.append(path)
        elif reason == "build-script-executed":
            self.build_scripts[package_id] = message


def load_build_context(
    options: SynthesisOptions,
    features: FeatureSelection,
    *,
    warnings: List[str],
    tools: ToolState,
) -> BuildContext:
    args = ["metadata", "--format-version", METADATA_FORMAT_VERSION, *features.cargo_args()]
    host = query_host_triple(options.rustc, warnings=warnings, tools=tools)
    if host:
        args.extend(["--filter-platform", host])
    else:
        warnings.append("Could not determine host triple; platform-specific dependencies are not filtered")
    result = run_cargo(options, args, warnings=warnings, tools=tools)
    if result is None:
        raise GraphAcquisitionFailure(f"Missing tool: {options.cargo}")
    if result.returncode != 0:
        raise GraphAcquisitionFailure(
            f"cargo metadata exited with {result.returncode}:\n{(result.stderr or '').strip()}"
        )
    try:
        metadata = json.loads(result.stdout or "")
    except json.JSONDecodeError as exc:
        raise GraphAcquisitionFailure(f"cargo metadata output is not valid JSON: {exc}") from exc
    if not isinstance(metadata, dict):
        raise GraphAcquisitionFailure("cargo metadata output is not a JSON object")
    return BuildContext.from_metadata(metadata)


class BuildContextProvider(GraphProvider):
    """Build-context strategy: structural workspace model plus a check run
    whose messages report artifact paths and build script results."""

    name = STRATEGY_CONTEXT

    def __init__(self, options: SynthesisOptions, tools: ToolState, warnings: List[str]) -> None:
        super().__init__(options, tools, warnings)
        self.context: Optional[BuildContext] = None
        self.features = FeatureSelection()
        self._index: Optional[Dict[str, Path]] = None

    def _require_context(self) -> BuildContext:
        if self.context is None:
            raise GraphAcquisitionFailure("Build context requested before the unit graph was obtained")
        return self.context

    def obtain_graph(self, features: FeatureSelection, lib_only: bool) -> UnitGraph:
        progress("Loading workspace metadata...", tools=self.tools)
        context = load_build_context(self.options, features, warnings=self.warnings, tools=self.tools)
        self.context = context
        self.features = features
        roots = context.root_keys(lib_only)
        if not roots:
            raise GraphAcquisitionFailure("Workspace has no buildable root targets")
        deps_by_key: Dict[UnitKey, List[Tuple[UnitKey, str]]] = {}

        def deps_of(key: UnitKey) -> List[UnitKey]:
            if key not in deps_by_key:
                deps_by_key[key] = context.unit_deps(key)
            return [dep_key for dep_key, _ in deps_by_key[key]]

        order = collect_units(roots, deps_of)
        positions = {key: index for index, key in enumerate(order)}
        units: List[CompilationUnit] = []
        for key in order:
            package_id = key[0]
            package = context.packages[package_id]
            target = context.target(key)
            manifest = package.get("manifest_path")
            try:
                package_ref = parse_package_id(package_id)
            except ValueError as exc:
                raise GraphAcquisitionFailure(str(exc)) from exc
            units.append(
                unit_from_target(
                    package_ref,
                    target,
                    features=context.nodes.get(package_id, {}).get("features") or [],
                    dependencies=[
                        UnitDep(index=positions[dep_key], extern_crate_name=extern_name)
                        for dep_key, extern_name in deps_by_key.get(key, [])
                        if dep_key in positions
                    ],
                    mode="build" if is_build_script_target(target) else "check",
                    manifest_path=Path(manifest) if isinstance(manifest, str) else None,
                )
            )
        progress(f"Materialized {len(units)} units", done=True, tools=self.tools)
        return UnitGraph(units=units, roots=[positions[key] for key in roots])

    def deps_dir(self) -> Path:
        context = self.context
        if self.options.target_dir is None and context is not None and context.target_directory is not None:
            return context.target_directory / self.options.profile_dir / "deps"
        return super().deps_dir()

    def check_args(self, unit: CompilationUnit) -> List[str]:
        context = self._require_context()
        args = ["check", "--message-format=json-render-diagnostics", "-p", unit.package.spec()]
        args.extend(self.options.cargo_build_args())
        if unit.package.raw in context.workspace_members():
            args.extend(self.features.cargo_args())
        if unit.is_linkable:
            args.append("--lib")
        elif "bin" in unit.kinds:
            args.extend(["--bin", unit.target_name])
        return args

    def prepare(self, graph: UnitGraph, unit: CompilationUnit) -> None:
        context = self._require_context()
        self._index = None
        if not self.options.check_dependencies:
            return
        progress(f"Running cargo check for {unit.package.spec()}...", tools=self.tools)
        result = run_cargo(self.options, self.check_args(unit), warnings=self.warnings, tools=self.tools)
        if result is None:
            raise GraphAcquisitionFailure(f"Missing tool: {self.options.cargo}")
        for message in iter_json_messages(result.stdout):
            context.record(message)
        if result.returncode == 0:
            progress("cargo check finished", done=True, tools=self.tools)
            return
        # The unit itself may not compile yet; only its dependencies matter here.
        for _, dep_unit in graph.unit_deps(unit):
            if dep_unit.is_build_script or not dep_unit.is_linkable:
                continue
            if not context.artifacts.get(unit_key(dep_unit)):
                raise DependencyBuildFailure(dep_unit.package.spec(), result.stderr)
        self.warnings.append(f"cargo check exited with {result.returncode}; using the artifacts it reported")

    def extern_artifact(self, graph: UnitGraph, dep_unit: CompilationUnit) -> Path:
        context = self._require_context()
        reported = context.artifacts.get(unit_key(dep_unit)) or []
        if reported:
            return max(reported, key=artifact_rank)
        self.warnings.append(
            f"cargo reported no artifact for {dep_unit.package.spec()}; scanning {self.deps_dir()}"
        )
        if self._index is None:
            try:
                self._index = index_artifacts(self.deps_dir(), self.warnings)
            except MissingArtifact as exc:
                raise MissingArtifact(missing_artifact_message(dep_unit.crate_name, self.deps_dir())) from exc
        return lookup_artifact(self._index, dep_unit.crate_name, self.deps_dir())

    def build_script_output(self, graph: UnitGraph, unit: CompilationUnit) -> Optional[BuildScriptOutput]:
        context = self._require_context()
        message = context.build_scripts.get(unit.package.raw)
        if message is None:
            return scan_build_script_output(self.build_dir(), unit.package.name)
        out_dir = message.get("out_dir")
        env = [(str(pair[0]), str(pair[1])) for pair in message.get("env") or [] if len(pair) == 2]
        return BuildScriptOutput(out_dir=Path(out_dir) if out_dir else None, env=env)
