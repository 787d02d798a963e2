"""CLI languages management.
"""

from instancemc.download import DownloadResultError
from instancemc.util import jvm_bin_filename

from typing import Optional


def get_raw(key: str, kwargs: Optional[dict]) -> str:
    """Get a message translated using the given keyword formatting arguments.

    :param key: The key of the message to translate.
    :param kwargs: The keyword formatting dictionary.
    :return: Translated message, or the key itself if not found.
    """
    try:
        return lang[key].format_map(kwargs or {})
    except KeyError:
        return key


def get(key: str, **kwargs) -> str:
    """Get a message translated using the given keyword formatting arguments.

    :param key: The key of the message to translate.
    :return: Translated message, or the key itself if not found.
    """
    return get_raw(key, kwargs)


lang = {
    # Args root
    "args": "Instancemc installs Minecraft versions into named instances, sharing "
        "libraries and assets between them, and builds the command line to launch them.",
    "args.main_dir": "Set the main directory where metadata, libraries, assets, accounts "
        "and instances are stored.",
    "args.instance": "Set the name of the instance to work with, defaults to 'default'.",
    "args.timeout": "Set a global timeout (in decimal seconds) for network requests.",
    "args.output": "Set the output format of the launcher, defaults to human-color.",
    "args.verbose": "Enable verbose output. The more -v argument you put, the more verbose the launcher will be, depending on subcommands' support (usually -v, -vv).",
    # Args search
    "args.search": "Search for versions in the catalog, or for local instances.",
    "args.search.kind": "Select the kind of search to operate.",
    "args.search.snapshots": "Include snapshots and old versions in the catalog search.",
    # Args download
    "args.download": "Download a version into the instance.",
    "args.download.version": "Version identifier (default to release): release|snapshot|<version>.",
    "args.download.jvm": f"Set a custom JVM '{jvm_bin_filename}' executable path, recorded in "
        "the instance's state. Defaults to the executable found in the PATH.",
    "args.download.jvm_args": "Extra JVM arguments recorded in the instance's state, "
        "appended when building the launch command.",
    "args.download.threads": "Number of download threads.",
    # Args launch
    "args.launch": "Print the command line launching the instance's installed version.",
    "args.launch.username": "Set the name of the player, its stored account is used if existing.",
    # Args account
    "args.account": "Manage the accounts used when launching.",
    "args.account.list": "List stored accounts.",
    "args.account.add": "Store an account, an offline account is stored if no UUID is given.",
    "args.account.add.uuid": "The UUID of the account.",
    "args.account.add.token": "The session access token of the account.",
    "args.account.remove": "Remove a stored account.",
    # Common
    "echo": "{echo}",
    "keyboard_interrupt": "Keyboard interrupted.",
    # Common errors
    "error.os": "An unexpected OS error happened:",
    "error.socket": "This operation requires an operational network, but a socket error happened:",
    "error.cert": "Certificate verification failed, you can try installing 'certifi' package:",
    "error.http": "HTTP request failed: {error}",
    # Command search
    "search.type": "Type",
    "search.name": "Identifier",
    "search.flags": "Flags",
    "search.flags.local": "local",
    "search.version": "Version",
    "search.last_modified": "Last modified",
    # Command download/launch
    "version.loading": "Loading version {version}... ",
    "version.fetching": "Fetching version {version}... ",
    "version.loaded": "Loaded version {version}",
    "version.loaded.fetched": "Loaded version {version} (fetched)",
    "version.not_found": "Version {version} not found",
    "version.decode_error": "Invalid metadata {source}: {reason}",
    "state.written": "Written state of instance {instance}: {components}",
    "state.error": "Invalid state: {error}",
    "state.component_not_found": "Component {name} is not installed, download a version first",
    "jar.found": "Checked version jar",
    "jar.not_found": "Version jar will be downloaded",
    "libraries.resolved": "Checked libraries, {libs_count} libraries and {natives_count} natives to download",
    "libraries.no_classifiers": "Library {name} declares natives but has no classifiers",
    "assets.resolving": "Checking assets version {index_version}... ",
    "assets.resolved": "Checked assets version {index_version}, {count} to download",
    "natives.cleaned": "Cleaned natives, removed {removed_files} files and {removed_dirs} directories",
    "arguments.not_found": "Version has no {group} arguments",
    "launch.command": "Launch command of version {version}:",
    # Command account
    "account.username": "Username",
    "account.uuid": "UUID",
    "account.added": "Added account {username}",
    "account.removed": "Removed account {username}",
    "account.not_found": "No account for {username}",
    # Pretty download
    "download.threads_count": "Download threads count: {count}",
    "download.start": "Download starting...",
    "download.progress": "Download: {count}/{total_count} {size:>8} @ {speed}",
    "download.error": "{name}: {message}",
    f"download.error.{DownloadResultError.CONNECTION}": "Connection error",
    f"download.error.{DownloadResultError.NOT_FOUND}": "Not found",
    f"download.error.{DownloadResultError.SERVER_ERROR}": "Server error",
    f"download.error.{DownloadResultError.INVALID_SIZE}": "Invalid size",
    f"download.error.{DownloadResultError.INVALID_SHA1}": "Invalid SHA1",
    f"download.error.{DownloadResultError.INVALID_ARCHIVE}": "Invalid archive",
}
