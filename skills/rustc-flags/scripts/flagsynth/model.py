from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from .constants import (
    BUILD_SCRIPT_KIND,
    LEGACY_PACKAGE_ID,
    LIB_CRATE_TYPE,
    LINKABLE_CRATE_TYPES,
    SEMVER_PATTERN,
)
from .errors import GraphAcquisitionFailure


@dataclass(frozen=True)
class PackageId:
    name: str
    version: str
    source: str
    raw: str

    def spec(self) -> str:
        return f"{self.name}@{self.version}"

    def manifest_dir(self) -> Optional[Path]:
        if not self.source.startswith("path+file://"):
            return None
        parsed = urlparse(self.source)
        if not parsed.path:
            return None
        return Path(unquote(parsed.path))

    def version_parts(self) -> Optional[Tuple[str, str, str, str]]:
        match = SEMVER_PATTERN.match(self.version)
        if not match:
            return None
        return match.group("major"), match.group("minor"), match.group("patch"), match.group("pre") or ""


def parse_package_id(raw: str) -> PackageId:
    """Parse a cargo package id.

    Accepts the legacy ``name version (source)`` form and the current
    ``source#[name@]version`` form, where the name defaults to the last
    path segment of the source URL.
    """
    legacy = LEGACY_PACKAGE_ID.match(raw)
    if legacy:
        return PackageId(
            name=legacy.group("name"),
            version=legacy.group("version"),
            source=legacy.group("source"),
            raw=raw,
        )
    if "#" not in raw:
        raise ValueError(f"Unrecognized package id: {raw}")
    source, fragment = raw.rsplit("#", 1)
    if "@" in fragment:
        name, version = fragment.split("@", 1)
    else:
        version = fragment
        name = urlparse(source).path.rstrip("/").rsplit("/", 1)[-1]
    if not name or not version:
        raise ValueError(f"Unrecognized package id: {raw}")
    return PackageId(name=name, version=version, source=source, raw=raw)


def normalize_crate_name(name: str) -> str:
    return name.replace("-", "_")


@dataclass(frozen=True)
class UnitDep:
    index: int
    extern_crate_name: str


@dataclass(frozen=True)
class CompilationUnit:
    package: PackageId
    target_name: str
    kinds: Tuple[str, ...]
    crate_types: Tuple[str, ...]
    src_path: Path
    edition: str
    features: Tuple[str, ...] = ()
    dependencies: Tuple[UnitDep, ...] = ()
    mode: str = "check"
    manifest_path: Optional[Path] = None

    @property
    def crate_name(self) -> str:
        return normalize_crate_name(self.target_name)

    @property
    def src_dir(self) -> Path:
        return self.src_path.parent

    @property
    def is_library(self) -> bool:
        return LIB_CRATE_TYPE in self.crate_types

    @property
    def is_linkable(self) -> bool:
        return any(kind in LINKABLE_CRATE_TYPES for kind in self.crate_types)

    @property
    def is_build_script(self) -> bool:
        return BUILD_SCRIPT_KIND in self.kinds

    def describe(self) -> str:
        kinds = ",".join(self.kinds)
        return f"{self.package.name} {self.package.version} [{kinds}] {self.target_name} ({self.mode})"


@dataclass
class UnitGraph:
    units: List[CompilationUnit]
    roots: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        count = len(self.units)
        for unit in self.units:
            for dep in unit.dependencies:
                if not 0 <= dep.index < count:
                    raise GraphAcquisitionFailure(
                        f"Unit {unit.describe()} references missing unit index {dep.index}"
                    )
        for root in self.roots:
            if not 0 <= root < count:
                raise GraphAcquisitionFailure(f"Root index {root} is outside the unit graph")

    def unit_deps(self, unit: CompilationUnit) -> List[Tuple[UnitDep, CompilationUnit]]:
        return [(dep, self.units[dep.index]) for dep in unit.dependencies]

    def root_units(self) -> List[CompilationUnit]:
        return [self.units[index] for index in self.roots]

    def build_script_unit(self, unit: CompilationUnit) -> Optional[CompilationUnit]:
        for _, dep_unit in self.unit_deps(unit):
            if dep_unit.is_build_script:
                return dep_unit
        return None


@dataclass(frozen=True)
class FeatureSelection:
    features: Tuple[str, ...] = ()
    all_features: bool = False
    no_default_features: bool = False

    def cargo_args(self) -> List[str]:
        args: List[str] = []
        if self.all_features:
            args.append("--all-features")
        if self.no_default_features:
            args.append("--no-default-features")
        if self.features:
            args.extend(["--features", ",".join(self.features)])
        return args


@dataclass
class BuildScriptOutput:
    out_dir: Optional[Path]
    env: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class SynthesizedInvocation:
    flags: List[str]
    env: Dict[str, str]
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flags": list(self.flags),
            "env": dict(sorted(self.env.items())),
            "warnings": list(self.warnings),
        }

    def command_line(self, program: Optional[str] = None) -> str:
        flags = list(self.flags)
        if program and flags:
            flags[0] = program
        assignments = [f"{key}={shlex.quote(value)}" for key, value in sorted(self.env.items())]
        return " ".join(assignments + [shlex.quote(flag) for flag in flags])
