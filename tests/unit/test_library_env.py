"""Unit tests for library environment and startup failure classification."""

import pytest

from dbbench.managers import library_env
from dbbench.managers.library_env import detect_library_error, get_library_env


def test_library_env_linux(monkeypatch):
    """Test Linux uses LD_LIBRARY_PATH."""
    monkeypatch.setattr(library_env.sys, "platform", "linux")

    assert get_library_env("/opt/pg") == {"LD_LIBRARY_PATH": "/opt/pg/lib"}


def test_library_env_macos(monkeypatch):
    """Test macOS uses the dyld fallback path."""
    monkeypatch.setattr(library_env.sys, "platform", "darwin")

    assert get_library_env("/opt/pg") == {"DYLD_FALLBACK_LIBRARY_PATH": "/opt/pg/lib"}


def test_library_env_windows(monkeypatch):
    """Test Windows needs no linker variables."""
    monkeypatch.setattr(library_env.sys, "platform", "win32")

    assert get_library_env("C:/pg") is None


def test_glibc_mismatch_names_symbol():
    """Test a too-old C library is reported with the required symbol."""
    output = (
        "/opt/mysql/bin/mysqld: /lib/x86_64-linux-gnu/libc.so.6: "
        "version `GLIBC_2.38' not found (required by /opt/mysql/bin/mysqld)"
    )

    message = detect_library_error(output, "MySQL")

    assert message is not None
    assert "GLIBC_2.38" in message
    assert message.startswith("MySQL failed to start")


def test_libc_tls_error():
    """Test libc TLS errors are classified as C library problems."""
    message = detect_library_error("libc.so.6: cannot allocate memory in static TLS block", "Redis")

    assert message is not None
    assert "libc.so.6" in message


def test_missing_openssl_linux(monkeypatch):
    """Test missing OpenSSL on Linux suggests the distribution packages."""
    monkeypatch.setattr(library_env.sys, "platform", "linux")
    output = (
        "clickhouse: error while loading shared libraries: libssl.so.3: "
        "cannot open shared object file: No such file or directory"
    )

    message = detect_library_error(output, "ClickHouse")

    assert "OpenSSL" in message
    assert "apt-get install libssl-dev" in message


def test_missing_shared_object():
    """Test other missing shared objects are named."""
    output = (
        "mongod: error while loading shared libraries: libcurl.so.4: "
        "cannot open shared object file: No such file or directory"
    )

    message = detect_library_error(output, "MongoDB")

    assert "libcurl.so.4" in message


def test_macos_openssl(monkeypatch):
    """Test dyld OpenSSL failures on macOS suggest Homebrew."""
    monkeypatch.setattr(library_env.sys, "platform", "darwin")
    output = "dyld[123]: Library not loaded: @rpath/libssl.3.dylib"

    message = detect_library_error(output, "PostgreSQL")

    assert "brew install openssl@3" in message


def test_dyld_generic_off_macos(monkeypatch):
    """Test dyld-style output elsewhere falls back to generic guidance."""
    monkeypatch.setattr(library_env.sys, "platform", "linux")

    message = detect_library_error("Library not loaded: @rpath/libfoo.dylib", "Qdrant")

    assert "dynamic library could not be loaded" in message
    assert "dnf install" in message


@pytest.mark.parametrize("output", ["", "database system is ready to accept connections"])
def test_unrecognized_output(output):
    """Test unknown output yields no remediation."""
    assert detect_library_error(output, "PostgreSQL") is None
