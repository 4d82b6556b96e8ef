#!/usr/bin/env python3
# alpine-forge/alpine_forge/modules/alpine_bootstrap.py

"""
Alpine Bootstrap Module.

Installs a minimal Alpine Linux system into the chroot directory without any
Alpine tooling on the host. Package versions are never hardcoded: the
current apk-tools-static and alpine-keys entries are looked up in the
mirror's APKINDEX, downloaded, and unpacked into the scratch directory. The
static apk binary then initializes the package database inside the chroot
and installs the base system.

The steps run strictly in order and nothing is retried. Each step can be
repeated safely after a failed run: downloads overwrite previous files and
extraction always happens into fresh directories.
"""

import io
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.config import BootstrapConfig
from ..core.context import BuildContext
from ..core.errors import AlpineForgeError, ExtractionError, NotFoundError, PackageToolError
from ..utils import archive
from ..utils.apkindex import PackageRecord, package_url, resolve_package
from ..utils.checksum import algorithm_for, verify_checksum
from ..utils.command import Runner
from ..utils.package_tool import ApkStatic
from ..utils.transport import Transport

TOOLS_PACKAGE = "apk-tools-static"
KEYS_PACKAGE = "alpine-keys"
APK_STATIC_MEMBER = "sbin/apk.static"
KEY_SUBPATHS = ("etc/apk/keys", "usr/share/apk/keys")
BASELINE_PACKAGES = ("alpine-baselayout", "apk-tools", "busybox", "busybox-suid", "musl-utils")
RELEASE_PACKAGE = "alpine-release"
# Carries etc/alpine-release and friends when alpine-release is not installable
RELEASE_FALLBACK_PACKAGE = "alpine-base"
HOST_RESOLV_CONF = Path("/etc/resolv.conf")

STEPS = (
    "resolve_tools",
    "fetch_tools",
    "extract_tool_binary",
    "resolve_keys",
    "fetch_keys",
    "extract_keys",
    "init_repositories",
    "install_baseline",
    "install_or_synthesize_release",
)


class AlpineBootstrap:
    """
    Bootstraps the Alpine base system into the chroot.

    Collaborators (transport, command runner, host resolv.conf) can be
    replaced, which is how the tests drive the whole sequence offline.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        context: BuildContext,
        transport: Optional[Transport] = None,
        runner: Optional[Runner] = None,
        host_resolv_conf: Path = HOST_RESOLV_CONF,
    ) -> None:
        self.config = config
        self.context = context
        self.transport = transport or Transport(timeout=config.timeout)
        self.runner = runner
        self.host_resolv_conf = host_resolv_conf
        self.logger = logging.getLogger(self.__class__.__name__)

        self.chroot_path: Path = config.chroot_dir
        self.temp_dir: Path = context.temp_dir or Path(tempfile.gettempdir())
        self.completed_steps = []

        self.tools_record: Optional[PackageRecord] = None
        self.keys_record: Optional[PackageRecord] = None
        self.tools_package: Optional[Path] = None
        self.keys_package: Optional[Path] = None
        self.apk: Optional[ApkStatic] = None
        self.release_mode: Optional[str] = None

    def execute(self) -> Dict[str, Any]:
        """
        Run every bootstrap step in order.

        Returns:
            On success: {'status': 'success', 'apk_tools_version': str,
                         'alpine_keys_version': str, 'release': str}
            On failure: {'status': 'error', 'error': str, 'module': str,
                         'step': str}
        """
        self.logger.info(f"Installing Alpine Linux {self.config.branch} ({self.config.arch}) into chroot")

        step = None
        try:
            for step in STEPS:
                getattr(self, f"_{step}")()
                self.completed_steps.append(step)
        except AlpineForgeError as e:
            self.logger.error(str(e))
            return {
                'status': 'error',
                'error': str(e),
                'module': self.__class__.__name__,
                'step': step,
            }
        except OSError as e:
            self.logger.error(f"Bootstrap step {step} failed: {e}")
            return {
                'status': 'error',
                'error': f"{step}: {e}",
                'module': self.__class__.__name__,
                'step': step,
            }

        return {
            'status': 'success',
            'apk_tools_version': self.tools_record.version,
            'alpine_keys_version': self.keys_record.version,
            'release': self.release_mode,
        }

    # Resolution and download

    def _resolve(self, package_name: str) -> PackageRecord:
        self.logger.info(f"Detecting latest {package_name} for {self.config.branch}/{self.config.arch}")
        record = resolve_package(
            self.config.mirror,
            self.config.branch,
            self.config.arch,
            package_name,
            self.transport,
            scratch_dir=self.temp_dir,
        )
        if record is None:
            raise NotFoundError(f"Failed to detect {package_name} package version")

        self.context.records[package_name] = record
        lockfile = self.context.lockfile
        if lockfile is not None:
            previous = lockfile.get_package_version(package_name)
            if previous and previous != record.version:
                self.logger.info(f"{package_name} changed from {previous} to {record.version}")
            lockfile.record_package(record)
        self.logger.info(f"Using {package_name}: {record.version}")
        return record

    def _fetch(self, record: PackageRecord) -> Path:
        url = package_url(self.config.mirror, self.config.branch, self.config.arch, record)
        destination = self.temp_dir / record.filename
        destination.unlink(missing_ok=True)
        self.transport.download(url, destination)

        # Only digests supplied by the user are checked; the APKINDEX
        # checksum covers the package content, not the file.
        checksum = self.config.checksums.get(record.name)
        verified = verify_checksum(destination, checksum, self.config.verify_checksums)
        if verified and self.context.lockfile is not None:
            self.context.lockfile.record_file_checksum(record.filename, algorithm_for(checksum), checksum)
        return destination

    def _resolve_tools(self) -> None:
        self.tools_record = self._resolve(TOOLS_PACKAGE)

    def _fetch_tools(self) -> None:
        self.logger.info("Downloading static apk-tools")
        self.tools_package = self._fetch(self.tools_record)

    def _extract_tool_binary(self) -> None:
        self.logger.info("Extracting apk.static from package")
        binary = archive.extract_member(self.tools_package, APK_STATIC_MEMBER, self.temp_dir / "apk.static")
        binary.chmod(0o755)
        self.context.apk_binary = binary
        self.apk = ApkStatic(binary, runner=self.runner)

    def _resolve_keys(self) -> None:
        self.keys_record = self._resolve(KEYS_PACKAGE)

    def _fetch_keys(self) -> None:
        self.logger.info("Downloading Alpine keys")
        self.keys_package = self._fetch(self.keys_record)

    def _extract_keys(self) -> None:
        keys_dir = self.chroot_path / "etc" / "apk" / "keys"
        keys_dir.mkdir(parents=True, exist_ok=True)

        scratch = Path(tempfile.mkdtemp(prefix="alpine-keys-", dir=self.temp_dir))
        try:
            archive.extract_all(self.keys_package, scratch)
            for subpath in KEY_SUBPATHS:
                source = scratch / subpath
                if not source.is_dir():
                    continue
                for entry in source.iterdir():
                    if entry.is_dir():
                        shutil.copytree(entry, keys_dir / entry.name, dirs_exist_ok=True)
                    else:
                        shutil.copy2(entry, keys_dir / entry.name)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        count = sum(1 for _ in keys_dir.iterdir())
        if count == 0:
            raise ExtractionError("No Alpine keys were extracted from package")
        self.logger.info(f"Extracted {count} Alpine signing keys")

    # Installation into the chroot

    def _init_repositories(self) -> None:
        apk_dir = self.chroot_path / "etc" / "apk"
        apk_dir.mkdir(parents=True, exist_ok=True)
        repositories = apk_dir / "repositories"
        repositories.write_text("".join(f"{line}\n" for line in self.config.repositories))
        self.logger.debug(f"Configured {repositories}")

        if self.host_resolv_conf.exists():
            # Follows the symlink; a systemd-resolved stub link would dangle in the chroot
            resolv_conf = self.chroot_path / "etc" / "resolv.conf"
            if resolv_conf.is_symlink():
                resolv_conf.unlink()
            shutil.copyfile(self.host_resolv_conf, resolv_conf)

    def _install_baseline(self) -> None:
        """
        Initialize the package database and install the base system in one
        apk invocation (--initdb together with the baseline packages).
        """
        if not (self.chroot_path / "etc" / "apk").is_dir():
            raise PackageToolError(f"{self.chroot_path}/etc/apk is missing, cannot initialize database")
        self.apk.add(
            self.chroot_path,
            list(BASELINE_PACKAGES),
            arch=self.config.arch,
            initdb=True,
            update_cache=True,
        )

    def _install_or_synthesize_release(self) -> None:
        if self.apk.knows(self.chroot_path, RELEASE_PACKAGE):
            self.apk.add(self.chroot_path, [RELEASE_PACKAGE])
            self.release_mode = "installed"
            return

        self.logger.info(f"{RELEASE_PACKAGE} is not installable, unpacking etc/ from {RELEASE_FALLBACK_PACKAGE}")
        payload = self.apk.fetch_stdout(self.chroot_path, RELEASE_FALLBACK_PACKAGE)
        if not payload:
            raise PackageToolError(f"apk fetch returned no data for {RELEASE_FALLBACK_PACKAGE}")
        archive.extract_prefix(io.BytesIO(payload), "etc", self.chroot_path)
        self.release_mode = "synthesized"

