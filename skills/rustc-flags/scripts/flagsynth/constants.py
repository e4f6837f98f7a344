from __future__ import annotations

import re

DEFAULT_MANIFEST = "Cargo.toml"
DEFAULT_TARGET_DIR = "target"
DEFAULT_PROFILE = "debug"

STRATEGY_CONTEXT = "context"
STRATEGY_UNIT_GRAPH = "unit-graph"
STRATEGIES = (STRATEGY_CONTEXT, STRATEGY_UNIT_GRAPH)

PROGRAM_NAME = "rustc"
EMIT_METADATA_ONLY = "--emit=dep-info,metadata"

LIB_CRATE_TYPE = "lib"
LINKABLE_CRATE_TYPES = {"lib", "rlib", "dylib", "proc-macro"}
ROOT_TARGET_KINDS = {"lib", "rlib", "dylib", "cdylib", "staticlib", "proc-macro", "bin"}
BUILD_SCRIPT_KIND = "custom-build"
BUILD_SCRIPT_EXTERN = "build_script_build"

# Preferred first: metadata, then full rlib, then proc-macro dylibs.
ARTIFACT_EXTENSIONS = ("rmeta", "rlib", "so", "dylib")
ARTIFACT_PATTERN = re.compile(
    r"^lib(?P<name>[A-Za-z0-9_\-]+)-(?P<hash>[0-9a-f]+)\.(?P<ext>rmeta|rlib|so|dylib)$"
)

BUILD_SCRIPT_ENV_PREFIXES = ("cargo::rustc-env=", "cargo:rustc-env=")

SEMVER_PATTERN = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z.\-]+))?(?:\+[0-9A-Za-z.\-]+)?$"
)
LEGACY_PACKAGE_ID = re.compile(r"^(?P<name>\S+) (?P<version>\S+) \((?P<source>.+)\)$")

UNIT_GRAPH_VERSION = 1
METADATA_FORMAT_VERSION = "1"

# Built-in profiles whose output directory differs from the profile name.
PROFILE_DIRS = {"dev": "debug", "test": "debug", "bench": "release"}

TARGET_DIR_HINT = "pass --target-dir if cargo writes elsewhere (a workspace member builds into the workspace root's target/)"
