"""Dynamic-linker environment and startup failure classification for bundled binaries."""

import os
import re
import sys
from typing import Dict

_GLIBC_SYMBOL_RE = re.compile(r"GLIBC_[0-9]+(?:\.[0-9]+)*", re.IGNORECASE)
_LIBC_SO_RE = re.compile(r"libc\.so(?:\.[0-9]+)*")
_SHARED_OBJECT_RE = re.compile(r"([A-Za-z0-9_.+-]+\.so(?:\.[0-9]+)*)")
_ISSUES_HINT = "If the problem persists, re-configure the binary with: dbbench config set <tool> <path>"


def get_library_env(binary_dir: str) -> Dict[str, str] | None:
    """
    Build environment variables pointing the dynamic linker at ``<binary_dir>/lib``.

    Args:
        binary_dir: Directory containing the engine's bundled binaries

    Returns:
        Mapping to merge into the child environment, or None on Windows
    """
    lib_dir = os.path.join(binary_dir, "lib")
    if sys.platform == "darwin":
        return {"DYLD_FALLBACK_LIBRARY_PATH": lib_dir}
    if sys.platform.startswith("win"):
        return None
    return {"LD_LIBRARY_PATH": lib_dir}


def detect_library_error(output: str, engine_label: str) -> str | None:
    """
    Classify process output as a library-loading failure.

    Args:
        output: Captured stdout/stderr or log tail of the failed process
        engine_label: Human readable engine name used in the message

    Returns:
        Remediation text, or None when the output shows no known library failure
    """
    if not output:
        return None

    lower = output.lower()
    needs_openssl = "libssl" in lower or "libcrypto" in lower

    # macOS dynamic loader
    if (
        "library not loaded" in lower
        or "dyld:" in lower
        or "dyld[" in lower
        or "@rpath/" in lower
    ):
        if needs_openssl and sys.platform == "darwin":
            return (
                f"{engine_label} failed to start: missing OpenSSL libraries.\n"
                "The binary requires OpenSSL 3 which is not installed.\n"
                "Fix: brew install openssl@3"
            )
        if sys.platform == "darwin":
            install = "Try: brew install openssl@3"
        else:
            install = (
                "Try: sudo apt-get install libssl-dev  (Debian/Ubuntu)\n"
                "     sudo dnf install openssl-devel   (Fedora/RHEL)"
            )
        return (
            f"{engine_label} failed to start: a required dynamic library could not be loaded.\n"
            "The binary was built against libraries not present on this system.\n"
            f"{install}\n{_ISSUES_HINT}"
        )

    # Runtime C library too old
    glibc = _GLIBC_SYMBOL_RE.search(output)
    libc = _LIBC_SO_RE.search(output)
    if glibc or (libc and ("tls" in lower or "not found" in lower)):
        symbol = glibc.group(0).upper() if glibc else libc.group(0)
        return (
            f"{engine_label} failed to start: incompatible system C library ({symbol}).\n"
            f"The binary requires {symbol}, which this system does not provide.\n"
            "Options:\n"
            "  - Upgrade your OS to a newer version\n"
            "  - Use a binary built for this system's C library"
        )

    if "error while loading shared libraries" in lower or "cannot open shared object file" in lower:
        if needs_openssl:
            return (
                f"{engine_label} failed to start: missing OpenSSL libraries.\n"
                "Fix: sudo apt-get install libssl-dev  (Debian/Ubuntu)\n"
                "     sudo dnf install openssl-devel   (Fedora/RHEL)"
            )
        missing = _SHARED_OBJECT_RE.search(output)
        name = missing.group(1) if missing else "a shared library"
        return (
            f"{engine_label} failed to start: {name} is missing.\n"
            f"Install the package that provides {name} and try again.\n{_ISSUES_HINT}"
        )

    return None
