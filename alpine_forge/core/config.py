#!/usr/bin/env python3
# alpine-forge/alpine_forge/core/config.py

"""
Bootstrap Configuration
Builds the immutable run configuration from defaults, an optional YAML file,
environment variables and command line overrides (in that order).
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import yaml

from ..utils.arch import host_architecture
from .errors import ConfigError

# Initialize a logger for this module
logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "latest-stable"
DEFAULT_MIRROR = "https://dl-cdn.alpinelinux.org/alpine"
DEFAULT_PACKAGES = ("build-base", "ca-certificates", "ssl_client")
DEFAULT_CHROOT_DIR = "/opt/alpine-rootfs"
DEFAULT_KEEP_VARS = ("ARCH", "CI", "QEMU_EMULATOR", "TRAVIS_.*")
DEFAULT_TIMEOUT = 10.0

# Pipeline modules in execution order
DEFAULT_MODULES = (
    "WorkspaceSetup",
    "EmulationProvisioner",
    "AlpineBootstrap",
    "LifecycleScripts",
    "FilesystemBinder",
    "AlpineSetup",
)

# Environment variable -> config key
ENV_SCALARS = {
    "ARCH": "arch",
    "ALPINE_BRANCH": "branch",
    "ALPINE_MIRROR": "mirror",
    "CHROOT_DIR": "chroot_dir",
    "BIND_DIR": "bind_dir",
    "TEMP_DIR": "temp_dir",
}
ENV_LISTS = {
    "ALPINE_PACKAGES": "packages",
    "EXTRA_REPOS": "extra_repos",
    "CHROOT_KEEP_VARS": "keep_vars",
}
ENV_FLAGS = {
    "SKIP_VERSION_CHECK": "skip_version_check",
    "DRY_RUN": "dry_run",
    "VERIFY_CHECKSUMS": "verify_checksums",
}
ENV_CHECKSUMS = {
    "APK_TOOLS_SHA256": "apk-tools-static",
    "ALPINE_KEYS_SHA256": "alpine-keys",
}

CONFIG_FILE_ENV = "ALPINE_FORGE_CONFIG"

LIST_KEYS = ("packages", "extra_repos", "keep_vars", "modules")


# Python-only regex syntax with no POSIX ERE equivalent in sed -E: extension
# groups, backslash classes and back-references, lazy or possessive
# quantifiers, anchors (the name is already anchored by the sed expression).
_NON_ERE_SYNTAX = re.compile(r"\(\?|\\[A-Za-z0-9]|[*+?}][?+]|(?<!\[)\^|\$")


def keep_vars_regex(keep_vars: Sequence[str]) -> str:
    """
    Build the alternation matching the environment variable names kept by
    enter-chroot, e.g. ('ARCH', 'TRAVIS_.*') -> '(ARCH|TRAVIS_.*)'.

    The result is embedded in a sed -E expression inside single quotes, so
    fragments may not contain quotes, slashes, whitespace or capture groups,
    and must stay within the syntax shared by Python and POSIX ERE.

    Raises:
        ConfigError: If a fragment is empty or not a valid pattern.
    """
    if not keep_vars:
        raise ConfigError("At least one kept environment variable pattern is required")
    for fragment in keep_vars:
        if not fragment or re.search(r"[\s'\"/]", fragment):
            raise ConfigError(f"Invalid environment variable pattern: {fragment!r}")
        unsupported = _NON_ERE_SYNTAX.search(fragment)
        if unsupported:
            raise ConfigError(
                f"Environment variable pattern {fragment!r} uses {unsupported.group()!r}, "
                f"which sed -E does not support"
            )
        try:
            compiled = re.compile(fragment)
        except re.error as e:
            raise ConfigError(f"Invalid environment variable pattern {fragment!r}: {e}") from e
        if compiled.groups:
            raise ConfigError(f"Environment variable pattern may not contain groups: {fragment!r}")
    return "(" + "|".join(keep_vars) + ")"


def _split(value: Union[str, Sequence[str], None]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "1", "on")
    return bool(value)


@dataclass(frozen=True)
class BootstrapConfig:
    """
    Validated, immutable configuration of one bootstrap run.

    Built once by `load_config()`; pipeline modules only read it.
    """

    arch: str
    host_arch: str
    branch: str = DEFAULT_BRANCH
    mirror: str = DEFAULT_MIRROR
    chroot_dir: Path = Path(DEFAULT_CHROOT_DIR)
    packages: Tuple[str, ...] = DEFAULT_PACKAGES
    extra_repos: Tuple[str, ...] = ()
    bind_dir: Optional[Path] = None
    keep_vars: Tuple[str, ...] = DEFAULT_KEEP_VARS
    temp_dir: Optional[Path] = None
    dry_run: bool = False
    skip_version_check: bool = False
    verify_checksums: bool = False
    checksums: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    modules: Tuple[str, ...] = DEFAULT_MODULES
    verbose: bool = False
    env_filter_regex: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.arch or "/" in self.arch:
            raise ConfigError(f"Invalid architecture: {self.arch!r}")
        if not self.branch or "/" in self.branch:
            raise ConfigError(f"Invalid Alpine branch: {self.branch!r}")
        parsed = urlparse(self.mirror)
        # Transport speaks HTTP(S) only
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Invalid mirror URL: {self.mirror!r}")
        if not self.chroot_dir.is_absolute():
            raise ConfigError(f"Chroot directory must be an absolute path: {self.chroot_dir}")
        if self.bind_dir is not None and not self.bind_dir.is_absolute():
            raise ConfigError(f"Bind directory must be an absolute path: {self.bind_dir}")
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive: {self.timeout}")
        unknown = [m for m in self.modules if m not in DEFAULT_MODULES]
        if unknown:
            raise ConfigError(f"Unknown pipeline modules: {', '.join(unknown)}")
        # Validated once here; the generated enter-chroot embeds it verbatim
        object.__setattr__(self, "env_filter_regex", keep_vars_regex(self.keep_vars))

    @property
    def repositories(self) -> List[str]:
        """Repository lines for etc/apk/repositories, in order"""
        base = f"{self.mirror.rstrip('/')}/{self.branch}"
        return [f"{base}/main", f"{base}/community"] + list(self.extra_repos)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
            elif isinstance(value, tuple):
                data[key] = list(value)
            elif isinstance(value, Mapping):
                data[key] = dict(value)
        return data


def load_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration values from a YAML file.

    Raises:
        ConfigError: If the file cannot be read, is not a mapping or holds
                     unknown keys.
    """
    path = Path(config_path)
    logger.info(f"Loading configuration from: {path}")
    try:
        with path.open("r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"I/O error accessing configuration file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")

    known = set(BootstrapConfig.__dataclass_fields__) - {"host_arch", "env_filter_regex"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys in {path}: {', '.join(unknown)}")
    return data


def _from_environment(environ: Mapping[str, str]) -> Tuple[Dict[str, Any], Dict[str, List[str]]]:
    scalars: Dict[str, Any] = {}
    lists: Dict[str, List[str]] = {}
    for var, key in ENV_SCALARS.items():
        if environ.get(var):
            scalars[key] = environ[var]
    for var, key in ENV_FLAGS.items():
        if environ.get(var):
            scalars[key] = _flag(environ[var])
    for var, key in ENV_LISTS.items():
        values = _split(environ.get(var))
        if values:
            lists[key] = values
    checksums = {pkg: environ[var] for var, pkg in ENV_CHECKSUMS.items() if environ.get(var)}
    if checksums:
        scalars["checksums"] = checksums
    return scalars, lists


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    cwd: Optional[Path] = None,
) -> BootstrapConfig:
    """
    Build the run configuration.

    Precedence is defaults < YAML file < environment < overrides. List values
    given on the command line extend those from the environment, and either
    replaces the YAML/default list.

    Args:
        config_path: Optional YAML configuration file; falls back to
                     $ALPINE_FORGE_CONFIG.
        environ: Environment mapping (defaults to os.environ).
        overrides: Command line values; None entries are ignored.
        cwd: Working directory used for the default bind directory.

    Returns:
        The validated BootstrapConfig.

    Raises:
        ConfigError: On any invalid value.
    """
    environ = os.environ if environ is None else environ
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    config_path = config_path or environ.get(CONFIG_FILE_ENV)

    values: Dict[str, Any] = {}
    if config_path:
        values.update(load_config_file(config_path))

    env_scalars, env_lists = _from_environment(environ)
    checksums = values.get("checksums") or {}
    if not isinstance(checksums, Mapping):
        raise ConfigError("checksums must be a mapping of package name to digest")
    values.update(env_scalars)
    # Digests merge per package across layers
    values["checksums"] = {**checksums, **env_scalars.get("checksums", {}), **overrides.pop("checksums", {})}

    for key in LIST_KEYS:
        combined = env_lists.get(key, []) + _split(overrides.pop(key, None))
        if combined:
            values[key] = combined
        elif key in values:
            values[key] = _split(values[key])
    values.update(overrides)

    if not values.get("bind_dir"):
        workdir = str(cwd or Path.cwd())
        values["bind_dir"] = workdir if workdir.startswith("/home/") else None

    host_arch = host_architecture()
    try:
        return BootstrapConfig(
            arch=str(values.get("arch") or host_arch),
            host_arch=host_arch,
            branch=str(values.get("branch", DEFAULT_BRANCH)),
            mirror=str(values.get("mirror", DEFAULT_MIRROR)),
            chroot_dir=Path(values.get("chroot_dir", DEFAULT_CHROOT_DIR)),
            packages=tuple(values.get("packages", DEFAULT_PACKAGES)),
            extra_repos=tuple(values.get("extra_repos", ())),
            bind_dir=Path(values["bind_dir"]) if values.get("bind_dir") else None,
            keep_vars=tuple(values.get("keep_vars", DEFAULT_KEEP_VARS)),
            temp_dir=Path(values["temp_dir"]) if values.get("temp_dir") else None,
            dry_run=_flag(values.get("dry_run", False)),
            skip_version_check=_flag(values.get("skip_version_check", False)),
            verify_checksums=_flag(values.get("verify_checksums", False)),
            checksums=dict(values.get("checksums") or {}),
            timeout=float(values.get("timeout", DEFAULT_TIMEOUT)),
            modules=tuple(values.get("modules", DEFAULT_MODULES)),
            verbose=_flag(values.get("verbose", False)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e
