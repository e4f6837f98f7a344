from __future__ import annotations

from .artifacts import (
    ArtifactIndex,
    check_dependencies,
    index_artifacts,
    lookup_artifact,
    missing_artifact_message,
)
from .assemble import (
    assemble,
    base_env,
    extern_flags,
    feature_flags,
    merge_build_script_env,
    unit_flags,
)
from .build_script import integrate, parse_build_script_output, scan_build_script_output
from .constants import STRATEGIES, STRATEGY_CONTEXT, STRATEGY_UNIT_GRAPH
from .context import BuildContext, BuildContextProvider, load_build_context
from .errors import (
    AmbiguousUnit,
    CompilerQueryFailure,
    DependencyBuildFailure,
    GraphAcquisitionFailure,
    ManifestResolutionFailure,
    MissingArtifact,
    SynthesisError,
    UnitNotFound,
)
from .graph import GraphProvider, UnitGraphProvider, collect_units, parse_unit_graph
from .locator import candidate_units, locate
from .model import (
    BuildScriptOutput,
    CompilationUnit,
    FeatureSelection,
    PackageId,
    SynthesizedInvocation,
    UnitDep,
    UnitGraph,
    normalize_crate_name,
    parse_package_id,
)
from .options import SynthesisOptions, load_manifest
from .rustc import query_host_triple, query_sysroot

from .core import create_provider, generate_rustc_flags
