"""Main entry point of the command line interface.
"""

import socket
import sys

from .parse import register_arguments, RootNs, SearchNs, DownloadNs, LaunchNs, \
    AccountAddNs, AccountRemoveNs
from .util import format_mtime, format_number
from .output import Output, HumanOutput, MachineOutput, OutputTable
from .lang import get as _

from ..standard import Context, SimpleWatcher, download, build_command, \
    DownloadError, VersionNotFoundError, LibraryNoClassifiersError, ArgumentsNotFoundError, \
    VersionLoadingEvent, VersionFetchingEvent, VersionLoadedEvent, StateWrittenEvent, \
    JarFoundEvent, LibrariesResolvedEvent, AssetsResolveEvent, NativesCleanedEvent, \
    DownloadStartEvent, DownloadProgressEvent, DownloadCompleteEvent
from ..manifest import VersionManifest, ManifestDecodeError
from ..state import State, StateError, ComponentNotFoundError
from ..auth import AccountStore, Account
from ..http import HttpError
from ..vanilla import Vanilla, GAME_COMPONENT, search_versions

from typing import cast, Optional, List, Union, Dict, Callable, Any


EXIT_OK = 0
EXIT_FAILURE = 1

MANIFEST_CACHE_FILE_NAME = "version_manifest.json"

CommandHandler = Callable[[Any], Any]
CommandTree = Dict[str, Union[CommandHandler, "CommandTree"]]


def main(args: Optional[List[str]] = None):
    """Main entry point of the CLI. This function parses the input arguments and try to
    find a command handler to dispatch to. These command handlers are specified by the
    `get_command_handlers` function.
    """

    parser = register_arguments()
    ns: RootNs = cast(RootNs, parser.parse_args(args or sys.argv[1:]))

    # Setup common objects in the namespace.
    ns.out = get_output(ns.out_kind)
    ns.context = Context(ns.main_dir, ns.instance)
    ns.version_manifest = VersionManifest(ns.context.get("meta") / MANIFEST_CACHE_FILE_NAME)
    socket.setdefaulttimeout(ns.timeout)

    # Find the command handler and run it.
    command_handlers = get_command_handlers()
    command_attr = "subcommand"
    while True:
        command = getattr(ns, command_attr)
        handler = command_handlers.get(command)
        if handler is None:
            parser.print_help()
            sys.exit(EXIT_FAILURE)
        elif callable(handler):
            cmd(handler, ns)
        elif isinstance(handler, dict):
            command_attr = f"{command}_{command_attr}"
            command_handlers = handler
            continue
        sys.exit(EXIT_OK)


def get_output(kind: str) -> Output:
    """Internal function that construct the output depending on its kind.
    The kind is constrained by choices set to the arguments parser.
    """

    if kind == "human-color":
        return HumanOutput(True)
    elif kind == "human":
        return HumanOutput(False)
    elif kind == "machine":
        return MachineOutput()
    else:
        raise ValueError()


def get_command_handlers() -> CommandTree:
    """Internal function returns the tree of command handlers for each subcommand
    of the CLI argument parser.
    """

    return {
        "search": cmd_search,
        "download": cmd_download,
        "launch": cmd_launch,
        "account": {
            "list": cmd_account_list,
            "add": cmd_account_add,
            "remove": cmd_account_remove,
        },
    }


def cmd(handler: CommandHandler, ns: RootNs):
    """Generic command handler that launch the given handler with the given namespace,
    it handles error in order to pretty print them.
    """

    try:
        handler(ns)
        sys.exit(EXIT_OK)

    except HttpError as error:
        ns.out.task("FAILED", "error.http", error=str(error))
        ns.out.finish()

    except ValueError as error:
        ns.out.task("FAILED", None)
        ns.out.finish()
        for arg in error.args:
            ns.out.task(None, "echo", echo=arg)
            ns.out.finish()

    except KeyboardInterrupt:
        ns.out.finish()
        ns.out.task("HALT", "keyboard_interrupt")
        ns.out.finish()

    except OSError as error:

        from urllib.error import URLError
        from ssl import SSLCertVerificationError

        key = "error.os"
        if isinstance(error, URLError) and isinstance(error.reason, SSLCertVerificationError):
            key = "error.cert"
        elif isinstance(error, (URLError, socket.gaierror, socket.timeout)):
            key = "error.socket"

        ns.out.task("FAILED", None)
        ns.out.finish()
        ns.out.task(None, key)
        ns.out.finish()

        import traceback
        traceback.print_exc()

    sys.exit(EXIT_FAILURE)


def cmd_search(ns: SearchNs):
    table = ns.out.table()
    cmd_search_handler(ns, ns.kind, table)
    table.print()
    sys.exit(EXIT_OK)

def cmd_search_handler(ns: SearchNs, kind: str, table: OutputTable):
    """Internal function that handles searching a particular kind of search.
    The value of "kind" is constrained by choices in the argument parser.
    """

    search = ns.input

    if kind == "mojang":

        table.add(
            _("search.type"),
            _("search.name"),
            _("search.flags"))
        table.separator()

        meta_dir = ns.context.get("meta") / GAME_COMPONENT
        for version in search_versions(ns.version_manifest, search, include_snapshots=ns.snapshots):
            table.add(
                version.type,
                version.id,
                _("search.flags.local") if (meta_dir / f"{version.id}.json").is_file() else "")

    elif kind == "local":

        table.add(
            _("search.name"),
            _("search.version"),
            _("search.last_modified"))
        table.separator()

        for instance in ns.context.list_instances():
            if search is None or search in instance:
                instance_dir = ns.context.instances_dir / instance
                state = State.load(instance_dir)
                try:
                    version = state.get_game(GAME_COMPONENT).version
                except ComponentNotFoundError:
                    version = ""
                table.add(instance, version, format_mtime(instance_dir.joinpath("state.json").stat().st_mtime))

    else:
        raise ValueError()


def cmd_download(ns: DownloadNs):

    version: Optional[str] = ns.version
    if version == "release":
        version = None
    elif version == "snapshot":
        version = ns.version_manifest.latest(True).id

    vanilla = Vanilla(ns.context, version,
        catalog=ns.version_manifest,
        jvm_path=ns.jvm,
        jvm_args=ns.jvm_args)

    try:
        watcher = CliWatcher(ns)
        vanilla.resolve(watcher)
        download(vanilla, watcher=watcher, threads_count=ns.threads)
        sys.exit(EXIT_OK)

    except VersionNotFoundError as error:
        ns.out.task("FAILED", "version.not_found", version=error.version)
        ns.out.finish()

    except ManifestDecodeError as error:
        ns.out.task("FAILED", "version.decode_error", source=error.source, reason=error.reason)
        ns.out.finish()

    except LibraryNoClassifiersError as error:
        ns.out.task("FAILED", "libraries.no_classifiers", name=error.name)
        ns.out.finish()

    except DownloadError as error:
        ns.out.task("FAILED", None)
        ns.out.finish()
        for entry, code, _origin in error.errors:
            ns.out.task(None, "download.error", name=entry.name, message=_(f"download.error.{code}"))
            ns.out.finish()

    sys.exit(EXIT_FAILURE)


def cmd_launch(ns: LaunchNs):

    try:
        watcher = CliWatcher(ns)
        vanilla = Vanilla.from_state(ns.context, catalog=ns.version_manifest)
        manifest = vanilla.resolve(watcher)
        command = build_command(vanilla, ns.username)
        ns.out.task("OK", "launch.command", version=manifest.id)
        ns.out.finish()
        ns.out.command(command)
        sys.exit(EXIT_OK)

    except ComponentNotFoundError as error:
        ns.out.task("FAILED", "state.component_not_found", name=error.name)
        ns.out.finish()

    except StateError as error:
        ns.out.task("FAILED", "state.error", error=str(error))
        ns.out.finish()

    except VersionNotFoundError as error:
        ns.out.task("FAILED", "version.not_found", version=error.version)
        ns.out.finish()

    except ManifestDecodeError as error:
        ns.out.task("FAILED", "version.decode_error", source=error.source, reason=error.reason)
        ns.out.finish()

    except ArgumentsNotFoundError as error:
        ns.out.task("FAILED", "arguments.not_found", group=error.group)
        ns.out.finish()

    sys.exit(EXIT_FAILURE)


def cmd_account_list(ns: RootNs):

    store = AccountStore.load(ns.context.get("accounts"))
    table = ns.out.table()

    table.add(_("account.username"), _("account.uuid"))
    table.separator()

    for account in store.accounts.values():
        table.add(account.username, account.uuid)

    table.print()


def cmd_account_add(ns: AccountAddNs):

    store = AccountStore.load(ns.context.get("accounts"))

    account = Account.offline(ns.username)
    if ns.uuid is not None:
        account.uuid = ns.uuid
    account.access_token = ns.token

    store.put(account)
    store.save()

    ns.out.task("OK", "account.added", username=account.username)
    ns.out.finish()


def cmd_account_remove(ns: AccountRemoveNs):

    store = AccountStore.load(ns.context.get("accounts"))
    if store.remove(ns.username) is not None:
        store.save()
        ns.out.task("OK", "account.removed", username=ns.username)
        ns.out.finish()
        sys.exit(EXIT_OK)
    else:
        ns.out.task("FAILED", "account.not_found", username=ns.username)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)


class CliWatcher(SimpleWatcher):

    def __init__(self, ns: RootNs) -> None:

        def progress_task(key: str, **kwargs) -> None:
            ns.out.task("..", key, **kwargs)

        def finish_task(key: str, **kwargs) -> None:
            ns.out.task("OK", key, **kwargs)
            ns.out.finish()

        def version_loaded(e: VersionLoadedEvent) -> None:
            finish_task("version.loaded.fetched" if e.fetched else "version.loaded", version=e.version)

        def state_written(e: StateWrittenEvent) -> None:
            if ns.verbose >= 1:
                ns.out.task("INFO", "state.written", instance=ns.context.instance, components=", ".join(e.components))
                ns.out.finish()

        def jar_found(e: JarFoundEvent) -> None:
            finish_task("jar.not_found" if e.download else "jar.found")

        def assets_resolve(e: AssetsResolveEvent) -> None:
            if e.count is None:
                ns.out.task("..", "assets.resolving", index_version=e.index_version)
            else:
                ns.out.task("OK", "assets.resolved", index_version=e.index_version, count=e.count)
                ns.out.finish()

        def natives_cleaned(e: NativesCleanedEvent) -> None:
            if ns.verbose >= 1:
                ns.out.task("INFO", "natives.cleaned", removed_files=e.removed_files, removed_dirs=e.removed_dirs)
                ns.out.finish()

        super().__init__({
            VersionLoadingEvent: lambda e: progress_task("version.loading", version=e.version),
            VersionFetchingEvent: lambda e: progress_task("version.fetching", version=e.version),
            VersionLoadedEvent: version_loaded,
            StateWrittenEvent: state_written,
            JarFoundEvent: jar_found,
            LibrariesResolvedEvent: lambda e: finish_task("libraries.resolved", libs_count=e.libs_count, natives_count=e.natives_count),
            AssetsResolveEvent: assets_resolve,
            NativesCleanedEvent: natives_cleaned,
            DownloadStartEvent: self.download_start,
            DownloadProgressEvent: self.download_progress,
            DownloadCompleteEvent: self.download_complete,
        })

        self.ns = ns
        self.entries_count = 0
        self.total_size = 0
        self.speeds: List[float] = []
        self.sizes: List[int] = []
        self.size = 0

    def download_start(self, e: DownloadStartEvent):

        if self.ns.verbose:
            self.ns.out.task("INFO", "download.threads_count", count=e.threads_count)
            self.ns.out.finish()

        self.entries_count = e.entries_count
        self.total_size = e.size
        self.speeds = [0.0] * e.threads_count
        self.sizes = [0] * e.threads_count
        self.size = 0
        self.ns.out.task("..", "download.start")

    def download_progress(self, e: DownloadProgressEvent) -> None:

        self.speeds[e.thread_id] = e.speed
        self.sizes[e.thread_id] = e.size

        speed = sum(self.speeds)
        total_count = str(self.entries_count)
        count = f"{e.count:{len(total_count)}}"

        self.ns.out.task("..", "download.progress",
            count=count,
            total_count=total_count,
            size=f"{format_number(self.size + sum(self.sizes))}o",
            speed=f"{format_number(speed)}o/s")

        if e.done:
            self.size += e.size
            self.sizes[e.thread_id] = 0

    def download_complete(self, e: DownloadCompleteEvent) -> None:
        self.ns.out.task("OK", None)
        self.ns.out.finish()
