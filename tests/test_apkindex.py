from __future__ import annotations

from pathlib import Path

import pytest

from alpine_forge.core.errors import TransportError
from alpine_forge.utils.apkindex import (
    PackageRecord,
    index_url,
    package_url,
    parse_apkindex,
    resolve_package,
)
from helpers import FakeTransport, index_block, make_targz

MIRROR = "https://mirror.test/alpine"

INDEX = (
    index_block(C="Q1aaa=", P="busybox", V="1.36.1-r29", A="x86_64", L="GPL-2.0-only", U="https://busybox.net/")
    + index_block(
        C="Q1bbb=",
        P="apk-tools-static",
        V="2.14.4-r0",
        A="x86_64",
        S="1234",
        L="GPL-2.0-only",
        U="https://gitlab.alpinelinux.org/alpine/apk-tools",
        c="4fd1c2e44f0a4e4b1b4a3e0f4a7d6c0e1b2a3c4d",
    )
    + index_block(P="alpine-keys", V="2.4-r1", A="x86_64", L="MIT", U="https://alpinelinux.org")
)


def test_parse_returns_matching_block() -> None:
    record = parse_apkindex(INDEX, "apk-tools-static")

    assert record == PackageRecord(
        name="apk-tools-static",
        version="2.14.4-r0",
        url="https://gitlab.alpinelinux.org/alpine/apk-tools",
        checksum="4fd1c2e44f0a4e4b1b4a3e0f4a7d6c0e1b2a3c4d",
        arch="x86_64",
        license="GPL-2.0-only",
    )


def test_parse_is_independent_of_field_order() -> None:
    text = index_block(U="https://example.org", A="aarch64", L="MIT", V="1.0-r0", P="alpine-keys", c="abc")

    record = parse_apkindex(text, "alpine-keys")

    assert record == PackageRecord(
        name="alpine-keys", version="1.0-r0", url="https://example.org", checksum="abc", arch="aarch64", license="MIT"
    )


def test_parse_name_match_is_exact_and_case_sensitive() -> None:
    assert parse_apkindex(INDEX, "apk-tools") is None
    assert parse_apkindex(INDEX, "Busybox") is None


def test_parse_not_found_and_empty() -> None:
    assert parse_apkindex(INDEX, "missing") is None
    assert parse_apkindex("", "busybox") is None


def test_parse_handles_final_block_without_blank_line() -> None:
    text = INDEX + "P:musl\nV:1.2.5-r0\nA:x86_64"

    record = parse_apkindex(text, "musl")

    assert record is not None
    assert record.version == "1.2.5-r0"


def test_parse_first_match_wins() -> None:
    text = index_block(P="dup", V="1") + index_block(P="dup", V="2")

    assert parse_apkindex(text, "dup").version == "1"


def test_urls() -> None:
    record = PackageRecord(name="alpine-keys", version="2.4-r1")

    assert index_url(MIRROR + "/", "v3.20", "x86_64") == f"{MIRROR}/v3.20/main/x86_64/APKINDEX.tar.gz"
    assert package_url(MIRROR, "edge", "aarch64", record) == f"{MIRROR}/edge/main/aarch64/alpine-keys-2.4-r1.apk"


def test_resolve_package_downloads_index_and_cleans_up(tmp_path: Path) -> None:
    url = index_url(MIRROR, "v3.20", "x86_64")
    transport = FakeTransport({url: make_targz({"DESCRIPTION": b"v3.20.0\n", "APKINDEX": INDEX.encode()})})

    record = resolve_package(MIRROR, "v3.20", "x86_64", "alpine-keys", transport, scratch_dir=tmp_path)

    assert record is not None
    assert record.version == "2.4-r1"
    assert transport.requested == [url]
    assert list(tmp_path.iterdir()) == []


def test_resolve_package_not_found_when_member_missing(tmp_path: Path) -> None:
    url = index_url(MIRROR, "v3.20", "x86_64")
    transport = FakeTransport({url: make_targz({"DESCRIPTION": b"v3.20.0\n"})})

    assert resolve_package(MIRROR, "v3.20", "x86_64", "alpine-keys", transport, scratch_dir=tmp_path) is None


def test_resolve_package_not_found_on_corrupt_index(tmp_path: Path) -> None:
    url = index_url(MIRROR, "v3.20", "x86_64")
    transport = FakeTransport({url: b"<html>not an archive</html>"})

    assert resolve_package(MIRROR, "v3.20", "x86_64", "alpine-keys", transport, scratch_dir=tmp_path) is None
    assert list(tmp_path.iterdir()) == []


def test_resolve_package_propagates_transport_errors(tmp_path: Path) -> None:
    with pytest.raises(TransportError):
        resolve_package(MIRROR, "v3.20", "x86_64", "alpine-keys", FakeTransport({}), scratch_dir=tmp_path)

    assert list(tmp_path.iterdir()) == []
