from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from utils import ToolState, progress

from .assemble import assemble
from .build_script import integrate
from .constants import STRATEGY_CONTEXT, STRATEGY_UNIT_GRAPH
from .context import BuildContextProvider
from .graph import GraphProvider, UnitGraphProvider
from .locator import locate
from .model import FeatureSelection, SynthesizedInvocation
from .options import SynthesisOptions, load_manifest
from .rustc import query_sysroot

PROVIDERS = {
    STRATEGY_CONTEXT: BuildContextProvider,
    STRATEGY_UNIT_GRAPH: UnitGraphProvider,
}


def create_provider(options: SynthesisOptions, tools: ToolState, warnings: List[str]) -> GraphProvider:
    provider_cls = PROVIDERS.get(options.strategy)
    if provider_cls is None:
        raise ValueError(f"Unknown strategy {options.strategy!r}; expected one of {sorted(PROVIDERS)}")
    return provider_cls(options, tools, warnings)


def generate_rustc_flags(
    source_path: Union[str, Path],
    features: Optional[FeatureSelection] = None,
    lib_only: bool = False,
    *,
    options: Optional[SynthesisOptions] = None,
    tools: Optional[ToolState] = None,
) -> SynthesizedInvocation:
    """Synthesize the rustc invocation cargo would use for the unit owning ``source_path``.

    Runs the whole pipeline once: manifest check, sysroot query, unit graph,
    owning unit, dependency preparation, build script output, flags. The
    returned environment is never applied to the current process.
    """
    options = options or SynthesisOptions.from_env()
    tools = tools or ToolState(verbose=options.verbose)
    features = features or FeatureSelection()
    warnings: List[str] = []

    load_manifest(options.manifest_path)
    sysroot = query_sysroot(options.rustc, warnings=warnings, tools=tools)
    provider = create_provider(options, tools, warnings)
    progress(f"Using {provider.name} strategy", tools=tools)
    graph = provider.obtain_graph(features, lib_only)
    unit = locate(graph, source_path)
    progress(f"Owning unit: {unit.describe()}", done=True, tools=tools)
    provider.prepare(graph, unit)
    build_output = integrate(graph, unit, provider, warnings)
    invocation = assemble(unit, sysroot, graph, provider, build_output)
    progress(f"Tools used: {', '.join(sorted(tools.used))}", done=True, tools=tools)
    invocation.warnings = warnings
    return invocation
