from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from flagsynth import FeatureSelection, SynthesisOptions


def parse_features(values: Optional[List[str]]) -> tuple:
    features: List[str] = []
    for value in values or []:
        for part in value.replace(",", " ").split():
            if part and part not in features:
                features.append(part)
    return tuple(features)


def feature_selection_from_args(args: argparse.Namespace) -> FeatureSelection:
    return FeatureSelection(
        features=parse_features(getattr(args, "features", None)),
        all_features=bool(getattr(args, "all_features", False)),
        no_default_features=bool(getattr(args, "no_default_features", False)),
    )


def options_from_args(args: argparse.Namespace) -> SynthesisOptions:
    target_dir = getattr(args, "target_dir", None)
    return SynthesisOptions.from_env(
        manifest_path=Path(args.manifest_path) if getattr(args, "manifest_path", None) else None,
        strategy=getattr(args, "strategy", None),
        target_dir=Path(target_dir) if target_dir else None,
        profile=getattr(args, "profile", None),
        check_dependencies=not getattr(args, "no_check_deps", False),
        verbose=bool(getattr(args, "verbose", False)),
    )
