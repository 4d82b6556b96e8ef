#!/usr/bin/env python3
# alpine-forge/alpine_forge/modules/lifecycle_scripts.py

"""
Lifecycle Scripts Module.

Writes the two scripts that remain in the chroot directory after the
bootstrap and are the only interface to it afterwards:

* enter-chroot [-u USER] [COMMAND...]
    Enters the chroot with a cleared environment. Only the variables whose
    names match the kept patterns are carried over, through an env.sh file
    sourced after /etc/profile. The caller's working directory is restored
    when it exists inside the chroot.

* destroy [-r|--remove]
    Unmounts everything mounted below the chroot directory, deepest first,
    and optionally removes the directory.

Both are regenerated on every run.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from ..core.config import BootstrapConfig, keep_vars_regex
from ..core.context import BuildContext

ENTER_SCRIPT = "enter-chroot"
DESTROY_SCRIPT = "destroy"

_ENTER_HEADER = """\
#!/bin/sh
set -e

ENV_FILTER_REGEX='{regex}'
"""

_ENTER_BODY = """\

user='root'
if [ $# -ge 2 ] && [ "$1" = '-u' ]; then
    user="$2"; shift 2
fi
oldpwd="$(pwd)"
[ "$(id -u)" -eq 0 ] || _sudo='sudo'

tmpfile="$(mktemp)"
chmod 644 "$tmpfile"
export | sed -En "s/^([^=]+ ${ENV_FILTER_REGEX}=)('.*'|\\".*\\")$/\\1\\3/p" > "$tmpfile" || true

cd "$(dirname "$0")"
$_sudo mv "$tmpfile" env.sh
$_sudo chroot . /usr/bin/env -i su -l "$user" \\
    sh -c ". /etc/profile; . /env.sh; cd '$oldpwd' 2>/dev/null; \\"\\$@\\"" \\
    -- "${@:-sh}"
"""

_DESTROY = """\
#!/bin/sh
set -e

remove=no
case "$1" in
    -r | --remove) remove=yes;;
    '') ;;
    *) echo "Usage: $0 [-r | --remove]"; exit 1;;
esac

SCRIPT_DIR=$(cd "$(dirname "$0")" && pwd)
[ "$(id -u)" -eq 0 ] || _sudo='sudo'

cat /proc/mounts | cut -d' ' -f2 | grep "^$SCRIPT_DIR/" | sort -r | while read path; do
    echo "Unmounting $path" >&2
    $_sudo umount -fn "$path" || exit 1
done

if [ "$remove" = yes ]; then
    rm_opts=''
    rm --help 2>&1 | grep -Fq 'one-file-system' && rm_opts='--one-file-system'

    echo "Removing $SCRIPT_DIR" >&2
    $_sudo rm -Rf $rm_opts "$SCRIPT_DIR"
else
    echo "If you want to remove $SCRIPT_DIR directory, run: $0 --remove" >&2
fi
"""


@dataclass(frozen=True)
class GeneratedScript:
    kind: str
    content: str
    executable: bool = True


def render_enter_script(keep_vars: Sequence[str], emulator_path: Optional[str] = None) -> str:
    """
    Render enter-chroot.

    Args:
        keep_vars: Regex fragments of environment variable names to keep.
        emulator_path: QEMU binary inside the chroot, exported literally
                       when emulation is in use.
    """
    script = _ENTER_HEADER.format(regex=keep_vars_regex(keep_vars))
    if emulator_path:
        script += f'export QEMU_EMULATOR="{emulator_path}"\n'
    return script + _ENTER_BODY


def render_destroy_script() -> str:
    return _DESTROY


def filter_environment(environ: Mapping[str, str], keep_vars: Sequence[str]) -> Dict[str, str]:
    """
    Return the variables of environ that enter-chroot would carry into the
    chroot: those whose whole name matches one of the kept patterns.
    """
    pattern = re.compile(keep_vars_regex(keep_vars))
    return {name: value for name, value in environ.items() if pattern.fullmatch(name)}


class LifecycleScripts:
    """Writes enter-chroot and destroy into the chroot directory"""

    def __init__(self, config: BootstrapConfig, context: BuildContext):
        self.config = config
        self.context = context
        self.logger = logging.getLogger(self.__class__.__name__)

    def scripts(self) -> Dict[str, GeneratedScript]:
        return {
            ENTER_SCRIPT: GeneratedScript(
                'enter', render_enter_script(self.config.keep_vars, self.context.emulator_path)
            ),
            DESTROY_SCRIPT: GeneratedScript('destroy', render_destroy_script()),
        }

    def execute(self) -> Dict:
        written = {}
        try:
            for name, script in self.scripts().items():
                written[script.kind] = str(self._write(self.config.chroot_dir / name, script))
        except OSError as e:
            self.logger.error(f"Failed to write lifecycle scripts: {e}")
            return {'status': 'error', 'error': str(e), 'module': self.__class__.__name__}

        return {'status': 'success', **written}

    def _write(self, path: Path, script: GeneratedScript) -> Path:
        path.write_text(script.content)
        if script.executable:
            path.chmod(0o755)
        self.logger.debug(f"Wrote {path}")
        return path
