"""Global utilities used internally. The functions can be used externally but upward
compatibility is not guaranteed unless explicitly specified.
"""

from pathlib import Path
import platform
import hashlib
import re

from typing import Optional, Dict, Tuple


jvm_bin_filename = "javaw.exe" if platform.system() == "Windows" else "java"

_VAR_RE = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


def get_os_name() -> Optional[str]:
    """Return the canonical name of the running operating system, one of `windows`, 
    `linux` or `macos`. None is returned for any other system, callers should consider
    such system as having no platform-specific resources.

    This is the only place where the running OS is detected, other functions receive
    its result as a parameter.
    """
    return {
        "Windows": "windows",
        "Linux": "linux",
        "Darwin": "macos",
    }.get(platform.system())


def normalize_os_name(name: Optional[str]) -> Optional[str]:
    """Normalize an OS name found in metadata to its canonical name. Metadata files use
    the legacy `osx` name for macOS.
    """
    if name == "osx":
        return "macos"
    return name


def native_extensions(os_name: Optional[str]) -> Tuple[str, ...]:
    """Return the file extensions of the dynamic libraries loaded by the JVM on the
    given OS, the first one being the main extension.
    """
    return {
        "windows": (".dll",),
        "linux": (".so",),
        "macos": (".dylib", ".jnilib"),
    }.get(os_name or "", ())


def get_arch_bits() -> Optional[int]:
    """Return the bits length of pointers on the current system.
    """
    return {
        "64bit": 64,
        "32bit": 32
    }.get(platform.architecture()[0])


def calc_input_sha1(input_stream, *, buffer_len: int = 8192) -> str:
    """Internal function to calculate the sha1 of an input stream.

    :param input_stream: The input stream that supports `readinto`.
    :param buffer_len: Internal buffer length, defaults to 8192
    :return: The sha1 string.
    """
    h = hashlib.sha1()
    b = bytearray(buffer_len)
    mv = memoryview(b)
    for n in iter(lambda: input_stream.readinto(mv), 0):
        h.update(mv[:n])
    return h.hexdigest()


def is_file_valid(path: Path, sha1: Optional[str]) -> bool:
    """Check that the given file is present and has the expected SHA-1 digest. This
    function never raises, an absent or unreadable file is just invalid.

    :param path: The file to check.
    :param sha1: The expected hex digest, if none then only the presence is checked.
    :return: True if the file exists and matches the digest.
    """
    if not path.is_file():
        return False
    if sha1 is None:
        return True
    try:
        with path.open("rb") as fp:
            return calc_input_sha1(fp) == sha1.lower()
    except OSError:
        return False


def replace_vars(text: str, replacements: Dict[str, str]) -> str:
    """Replace all variables of the form `${foo}` in a string. Variables with no
    replacement are kept as-is.
    """
    return _VAR_RE.sub(lambda m: replacements.get(m.group(1), m.group(0)), text)


def replace_list_vars(text_list, replacements: Dict[str, str]):
    """Call `replace_vars` on multiple texts in a list with the same replacements.
    """
    return [replace_vars(elt, replacements) for elt in text_list]


def get_main_dir() -> Path:
    """Internal function to get the default main directory where shared resources and
    instances are stored.
    """
    home = Path.home()
    return {
        "Windows": home.joinpath("AppData", "Roaming", ".instancemc"),
        "Darwin": home.joinpath("Library", "Application Support", "instancemc"),
    }.get(platform.system(), home / ".instancemc")
