from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .constants import DEFAULT_MANIFEST, DEFAULT_PROFILE, DEFAULT_TARGET_DIR, PROFILE_DIRS, STRATEGY_CONTEXT
from .errors import ManifestResolutionFailure


@dataclass
class SynthesisOptions:
    manifest_path: Path
    strategy: str = STRATEGY_CONTEXT
    cargo: str = "cargo"
    rustc: str = "rustc"
    target_dir: Optional[Path] = None
    profile: str = DEFAULT_PROFILE
    check_dependencies: bool = True
    verbose: bool = False

    @property
    def manifest_dir(self) -> Path:
        return self.manifest_path.parent

    @classmethod
    def from_env(
        cls,
        manifest_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "SynthesisOptions":
        env = os.environ if environ is None else environ
        manifest = Path(manifest_path) if manifest_path else Path(DEFAULT_MANIFEST)
        target_dir = env.get("CARGO_TARGET_DIR")
        options = cls(
            manifest_path=manifest.absolute(),
            cargo=env.get("CARGO") or "cargo",
            rustc=env.get("RUSTC") or "rustc",
            target_dir=Path(target_dir) if target_dir else None,
        )
        overrides = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(options, **overrides)

    def resolved_target_dir(self) -> Path:
        if self.target_dir is None:
            return self.manifest_dir / DEFAULT_TARGET_DIR
        if self.target_dir.is_absolute():
            return self.target_dir
        return self.manifest_dir / self.target_dir

    @property
    def profile_dir(self) -> str:
        """Directory under the target dir that cargo writes this profile to."""
        return PROFILE_DIRS.get(self.profile, self.profile)

    def cargo_build_args(self) -> List[str]:
        """Profile and target-dir arguments shared by every cargo build command."""
        args: List[str] = []
        if self.profile == "release":
            args.append("--release")
        elif self.profile != DEFAULT_PROFILE:
            args.extend(["--profile", self.profile])
        if self.target_dir is not None:
            args.extend(["--target-dir", str(self.resolved_target_dir())])
        return args


def load_manifest(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ManifestResolutionFailure(f"Manifest not found: {path}")
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ManifestResolutionFailure(f"Failed to read {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ManifestResolutionFailure(f"Failed to parse {path}: {exc}") from exc
    if "package" not in data and "workspace" not in data:
        raise ManifestResolutionFailure(f"{path} has neither a [package] nor a [workspace] table")
    return data
