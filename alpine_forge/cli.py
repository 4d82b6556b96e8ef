#!/usr/bin/env python3
# alpine-forge/alpine_forge/cli.py - Main entry point
"""
alpine-rootfs-setup
Alpine Linux chroot installer with multi-architecture support.

Example:
    alpine-rootfs-setup -d /opt/alpine-rootfs -p build-base -p cmake
"""
import argparse
import sys
from typing import Dict, List, Optional

from . import __version__
from .core.builder import AlpineForgeBuilder
from .core.config import load_config
from .core.errors import AlpineForgeError
from .utils.terminal_ui import TerminalUI


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='alpine-rootfs-setup',
        description='Alpine Linux chroot installer with multi-architecture support.',
        epilog='Every option can also be given through its environment variable '
               '(ARCH, ALPINE_BRANCH, CHROOT_DIR, BIND_DIR, CHROOT_KEEP_VARS, ALPINE_MIRROR, '
               'ALPINE_PACKAGES, EXTRA_REPOS, TEMP_DIR, SKIP_VERSION_CHECK, DRY_RUN, '
               'VERIFY_CHECKSUMS, ALPINE_FORGE_CONFIG).',
    )
    parser.add_argument('-a', dest='arch', metavar='ARCH',
                        help='Target architecture (x86_64, armhf, aarch64, ...); default: host architecture')
    parser.add_argument('-b', dest='branch', metavar='BRANCH',
                        help='Alpine branch (default: latest-stable)')
    parser.add_argument('-d', dest='chroot_dir', metavar='DIR',
                        help='Destination directory (default: /opt/alpine-rootfs)')
    parser.add_argument('-i', dest='bind_dir', metavar='DIR',
                        help='Directory bound into the chroot at the same path '
                             '(default: current directory when under /home)')
    parser.add_argument('-k', dest='keep_vars', action='append', metavar='VARS',
                        help='Environment variable name patterns kept by enter-chroot (repeatable)')
    parser.add_argument('-m', dest='mirror', metavar='URL',
                        help='Alpine mirror (default: https://dl-cdn.alpinelinux.org/alpine)')
    parser.add_argument('-p', dest='packages', action='append', metavar='PACKAGES',
                        help='Packages to install (repeatable)')
    parser.add_argument('-r', dest='extra_repos', action='append', metavar='REPO',
                        help='Extra repository added to etc/apk/repositories (repeatable)')
    parser.add_argument('-t', dest='temp_dir', metavar='DIR',
                        help='Temporary directory for downloads')
    parser.add_argument('-c', '--config', dest='config_file', metavar='FILE',
                        help='YAML configuration file')
    parser.add_argument('-n', dest='skip_version_check', action='store_true', default=None,
                        help='Skip version update check')
    parser.add_argument('-D', dest='dry_run', action='store_true', default=None,
                        help='Dry run (validate configuration without installing)')
    parser.add_argument('--verify-checksums', dest='verify_checksums', action='store_true', default=None,
                        help='Verify downloads against APK_TOOLS_SHA256 / ALPINE_KEYS_SHA256')
    parser.add_argument('-V', '--verbose', dest='verbose', action='store_true', default=None,
                        help='Show debug output')
    parser.add_argument('-v', '--version', action='version',
                        version=f'alpine-rootfs-setup {__version__}')
    return parser


def _overrides(args: argparse.Namespace) -> Dict:
    keys = ('arch', 'branch', 'chroot_dir', 'bind_dir', 'keep_vars', 'mirror', 'packages',
            'extra_repos', 'temp_dir', 'skip_version_check', 'dry_run', 'verify_checksums', 'verbose')
    values = {key: getattr(args, key) for key in keys}
    for key in ('keep_vars', 'packages', 'extra_repos'):
        # -p "a b" -p c -> ['a', 'b', 'c']
        if values[key]:
            values[key] = ' '.join(values[key])
    return values


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for alpine-rootfs-setup"""
    args = build_parser().parse_args(argv)
    ui = TerminalUI()

    try:
        config = load_config(args.config_file, overrides=_overrides(args))
        builder = AlpineForgeBuilder(config, ui=ui)
        result = builder.run()
    except AlpineForgeError as e:
        ui.error(str(e))
        return 1

    if result['status'] != 'success':
        ui.error(f"Bootstrap failed: {result.get('error')}")
        if result.get('log_path'):
            ui.error(f"Check log for details: {result['log_path']}")
        return 1

    if not result.get('dry_run'):
        chroot_dir = result['chroot_dir']
        ui.display_banner(
            "---\n"
            "Alpine installation is complete\n"
            f"Run {chroot_dir}/enter-chroot [-u <user>] [command] to enter the chroot\n"
            f"and {chroot_dir}/destroy [--remove] to destroy it."
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
