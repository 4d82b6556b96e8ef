from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

from alpine_forge.core.context import BuildContext
from alpine_forge.modules.lifecycle_scripts import (
    DESTROY_SCRIPT,
    ENTER_SCRIPT,
    LifecycleScripts,
    filter_environment,
    render_destroy_script,
    render_enter_script,
)
from helpers import make_config

KEEP_VARS = ("ARCH", "CI", "QEMU_EMULATOR", "TRAVIS_.*")


def test_enter_script_embeds_filter_regex() -> None:
    script = render_enter_script(KEEP_VARS)

    assert script.startswith("#!/bin/sh\nset -e\n")
    assert "ENV_FILTER_REGEX='(ARCH|CI|QEMU_EMULATOR|TRAVIS_.*)'" in script
    assert "export QEMU_EMULATOR" not in script
    assert "chroot . /usr/bin/env -i su -l \"$user\"" in script
    assert "\"${@:-sh}\"" in script


def test_enter_script_exports_emulator() -> None:
    script = render_enter_script(KEEP_VARS, "/usr/bin/qemu-arm-static")

    assert 'export QEMU_EMULATOR="/usr/bin/qemu-arm-static"\n' in script
    assert script.index("ENV_FILTER_REGEX=") < script.index("export QEMU_EMULATOR")


def test_filter_environment_matches_whole_names() -> None:
    environ = {
        "ARCH": "armhf",
        "TRAVIS_BUILD": "42",
        "HOME": "/root",
        "CI_TOKEN": "secret",
        "MY_ARCH": "x",
    }

    assert filter_environment(environ, KEEP_VARS) == {"ARCH": "armhf", "TRAVIS_BUILD": "42"}


def test_destroy_script_contents() -> None:
    script = render_destroy_script()

    assert "-r | --remove) remove=yes;;" in script
    assert 'grep "^$SCRIPT_DIR/" | sort -r' in script
    assert 'umount -fn "$path"' in script
    assert "--one-file-system" in script


def test_scripts_are_written_executable(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    config.chroot_dir.mkdir()
    context = BuildContext(emulator_path="/usr/bin/qemu-aarch64-static")

    result = LifecycleScripts(config, context).execute()

    enter = config.chroot_dir / ENTER_SCRIPT
    destroy = config.chroot_dir / DESTROY_SCRIPT
    assert result == {"status": "success", "enter": str(enter), "destroy": str(destroy)}
    assert os.access(enter, os.X_OK)
    assert os.access(destroy, os.X_OK)
    assert "qemu-aarch64-static" in enter.read_text()


def test_scripts_are_overwritten_on_rerun(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    config.chroot_dir.mkdir()
    (config.chroot_dir / ENTER_SCRIPT).write_text("stale")

    LifecycleScripts(config, BuildContext()).execute()

    assert (config.chroot_dir / ENTER_SCRIPT).read_text() == render_enter_script(config.keep_vars)


def test_write_failure_is_reported(tmp_path: Path) -> None:
    config = make_config(tmp_path)

    result = LifecycleScripts(config, BuildContext()).execute()

    assert result["status"] == "error"
    assert result["module"] == "LifecycleScripts"


def test_destroy_rejects_unknown_argument(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    config.chroot_dir.mkdir()
    LifecycleScripts(config, BuildContext()).execute()

    proc = subprocess.run(
        ["sh", str(config.chroot_dir / DESTROY_SCRIPT), "--bogus"], capture_output=True, text=True
    )

    assert proc.returncode == 1
    assert "Usage:" in proc.stdout


def test_destroy_without_mounts_keeps_directory(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    config.chroot_dir.mkdir()
    LifecycleScripts(config, BuildContext()).execute()

    proc = subprocess.run(["sh", str(config.chroot_dir / DESTROY_SCRIPT)], capture_output=True, text=True)

    assert proc.returncode == 0
    assert "--remove" in proc.stderr
    assert config.chroot_dir.is_dir()


def env_export_commands(script: str) -> str:
    """The ENV_FILTER_REGEX assignment and the export filter of enter-chroot, writing to stdout."""
    lines = [line for line in script.splitlines() if line.startswith(("ENV_FILTER_REGEX=", "export | sed"))]
    assert len(lines) == 2
    return lines[0] + "\n" + lines[1].split(" > ")[0] + "\n"


@pytest.mark.parametrize(
    "keep_vars, kept, dropped",
    [
        (KEEP_VARS, ["ARCH", "TRAVIS_BUILD"], ["HOME", "BUILD_42", "XARCH"]),
        (("BUILD_[0-9]+", "A[RS]CH"), ["BUILD_42", "ARCH"], ["BUILD_X", "TRAVIS_BUILD", "HOME"]),
    ],
)
def test_enter_script_filter_runs_under_sh(keep_vars, kept, dropped) -> None:
    environ = {
        "PATH": os.environ["PATH"],
        "ARCH": "armhf",
        "XARCH": "mips",
        "HOME": "/root",
        "TRAVIS_BUILD": "42",
        "BUILD_42": "yes",
        "BUILD_X": "no",
    }

    proc = subprocess.run(
        ["sh", "-c", env_export_commands(render_enter_script(keep_vars))],
        env=environ, capture_output=True, text=True,
    )

    assert proc.returncode == 0, proc.stderr
    names = {line.split()[-1].split("=", 1)[0] for line in proc.stdout.splitlines()}
    assert set(kept) <= names
    assert not names & set(dropped)
    assert names == set(filter_environment(environ, keep_vars))


def fake_bin(tmp_path: Path, mount_points, failing: str = "") -> tuple:
    """Stand-ins for cat, umount and sudo; umount calls are logged."""
    bindir = tmp_path / "bin"
    bindir.mkdir()
    log = tmp_path / "umount.log"
    table = "".join(f"tmpfs {point} tmpfs rw 0 0\n" for point in mount_points)
    (tmp_path / "mounts").write_text(table)
    scripts = {
        "cat": f'#!/bin/sh\nexec /bin/cat "{tmp_path / "mounts"}"\n',
        "umount": (
            "#!/bin/sh\n"
            f'[ -n "{failing}" ] && [ "$2" = "{failing}" ] && exit 32\n'
            f'echo "$@" >> "{log}"\n'
        ),
        "sudo": '#!/bin/sh\nexec "$@"\n',
    }
    for name, body in scripts.items():
        (bindir / name).write_text(body)
        (bindir / name).chmod(0o755)
    env = {"PATH": f"{bindir}{os.pathsep}{os.environ['PATH']}", "LC_ALL": "C"}
    return env, log


def test_destroy_unmounts_deepest_first(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    config.chroot_dir.mkdir()
    LifecycleScripts(config, BuildContext()).execute()
    root = str(config.chroot_dir)
    env, log = fake_bin(tmp_path, [f"{root}/a", f"{root}/a/b/c", f"{root}-other/x", f"{root}/a/b", root])

    proc = subprocess.run(["sh", str(config.chroot_dir / DESTROY_SCRIPT)], env=env, capture_output=True, text=True)

    assert proc.returncode == 0, proc.stderr
    assert log.read_text().splitlines() == [f"-fn {root}/a/b/c", f"-fn {root}/a/b", f"-fn {root}/a"]
    assert config.chroot_dir.is_dir()


def test_destroy_stops_when_unmount_fails(tmp_path: Path) -> None:
    config = make_config(tmp_path)
    config.chroot_dir.mkdir()
    LifecycleScripts(config, BuildContext()).execute()
    root = str(config.chroot_dir)
    env, log = fake_bin(tmp_path, [f"{root}/proc", f"{root}/sys"], failing=f"{root}/proc")

    proc = subprocess.run(
        ["sh", str(config.chroot_dir / DESTROY_SCRIPT), "--remove"], env=env, capture_output=True, text=True
    )

    assert proc.returncode != 0
    assert log.read_text().splitlines() == [f"-fn {root}/sys"]
    assert config.chroot_dir.is_dir()
