"""Definition of the installation context of an instance, and of the two sequences
working on it: the download sequence, installing everything needed to run a version,
and the launch sequence, building the command line of the game.

These sequences are generic and work with any game variant implementing the
`Downloadable` and `Launchable` contracts, see the `vanilla` module.
"""

from pathlib import Path
import os

from .download import DownloadList, DownloadResultProgress, DownloadResultError, \
    DownloadEntry, DEFAULT_THREADS_COUNT, cleanup_natives
from .state import State
from .util import get_main_dir

from typing import Optional, Dict, List, Tuple, Any, Callable, Iterator


class Context:
    """Context of an instance's installation. This defines the directories where shared
    resources (metadata, libraries and assets) are stored, and the instance directory
    where the state, the extracted natives and the legacy resources are stored. The
    game is run from the instance directory.
    """

    ROLES = "instance", "meta", "libraries", "natives", "assets", "resources", "accounts"

    def __init__(self, main_dir: Optional[Path] = None, instance: str = "default") -> None:
        """Construct an instance's context.

        :param main_dir: The main directory where shared resources and instances are
        stored, defaults to the usual directory of the current platform.
        :param instance: The name of the instance.
        """

        self.main_dir = get_main_dir() if main_dir is None else main_dir
        self.instance = instance
        self.instances_dir = self.main_dir / "instances"

        instance_dir = self.instances_dir / instance
        self.paths: Dict[str, Path] = {
            "instance": instance_dir,
            "meta": self.main_dir / "meta",
            "libraries": self.main_dir / "libraries",
            "natives": instance_dir / "natives",
            "assets": self.main_dir / "assets",
            "resources": instance_dir / "resources",
            "accounts": self.main_dir / "accounts.json",
        }

    def get(self, role: str) -> Path:
        """Get the path associated to the given role.

        :raises PathNotFoundError: If the role is unknown.
        """
        try:
            return self.paths[role]
        except KeyError:
            raise PathNotFoundError(role) from None

    def list_instances(self) -> Iterator[str]:
        """List names of the instances that have a state file.
        """
        if self.instances_dir.is_dir():
            for instance_dir in self.instances_dir.iterdir():
                if instance_dir.joinpath("state.json").is_file():
                    yield instance_dir.name


class Watcher:
    """Base class for a watcher of the download and launch sequences.
    """

    def handle(self, event: Any) -> None:
        """Called when the watcher can handle the given event. Default implementation
        does nothing.
        """


class SimpleWatcher(Watcher):

    def __init__(self, handlers: Dict[type, Callable[[Any], None]]) -> None:
        self.handlers = handlers

    def handle(self, event: Any) -> None:
        handler = self.handlers.get(type(event))
        if handler is not None:
            handler(event)


class Downloadable:
    """Contract of a game variant that can be installed by the download sequence. The
    implementor provides the context and the canonical OS name it works with.
    """

    context: Context
    os_name: Optional[str]

    def initialize_state(self, state: State) -> None:
        """Insert all the component records of this variant into the given state, every
        record must be inserted, even if unchanged.
        """
        raise NotImplementedError

    def collect_plan(self, watcher: Watcher) -> DownloadList:
        """Compute the download plan of all missing or invalid files.
        """
        raise NotImplementedError


class Launchable:
    """Contract of a game variant whose launch command can be built.
    """

    state: State

    def main_class(self) -> str:
        raise NotImplementedError

    def game_arguments(self, username: str) -> List[str]:
        raise NotImplementedError

    def classpath(self) -> str:
        raise NotImplementedError

    def jvm_arguments(self, classpath: str) -> List[str]:
        raise NotImplementedError


def download(target: Downloadable, *,
    watcher: Optional[Watcher] = None,
    threads_count: int = DEFAULT_THREADS_COUNT
) -> State:
    """Run the download sequence of the given variant. The state is rebuilt and
    written first, then the download plan is computed and executed, and finally the
    natives directory is cleaned.

    :return: The state that has been written.
    :raises DownloadError: If any file cannot be downloaded.
    """

    watcher = watcher or Watcher()
    instance_dir = target.context.get("instance")

    state = State()
    target.initialize_state(state)
    state.write(instance_dir)
    watcher.handle(StateWrittenEvent(instance_dir, list(state.components.keys())))

    plan = target.collect_plan(watcher)
    execute_plan(plan, watcher, threads_count)

    natives_dir = target.context.get("natives")
    removed_files, removed_dirs = cleanup_natives(natives_dir, target.os_name)
    watcher.handle(NativesCleanedEvent(natives_dir, removed_files, removed_dirs))

    return state


def execute_plan(plan: DownloadList, watcher: Watcher, threads_count: int = DEFAULT_THREADS_COUNT) -> None:
    """Execute a download plan, blocking until all entries are downloaded. The download
    stops on the first entry that fails after all of its tries.

    :raises DownloadError: With the entries that failed.
    """

    entries_count = len(plan)
    if not entries_count:
        return

    # Note: do not create more thread than available entries.
    threads_count = min(entries_count, threads_count)
    errors = []

    watcher.handle(DownloadStartEvent(threads_count, entries_count, plan.size))

    for result_count, result in plan.download(threads_count, partial_progress=True):
        if isinstance(result, DownloadResultProgress):
            watcher.handle(DownloadProgressEvent(
                result.thread_id,
                result_count,
                result.entry,
                result.size,
                result.speed,
                result.done
            ))
        elif isinstance(result, DownloadResultError):
            errors.append((result.entry, result.code, result.origin))

    # If errors are present, raise an error.
    if len(errors):
        raise DownloadError(errors)

    # Clear entries if successful, therefore multiple calls can be chained if
    # needed, without re-downloading the same files.
    plan.clear()

    watcher.handle(DownloadCompleteEvent())


def build_command(target: Launchable, username: str) -> List[str]:
    """Build the full command line for launching the game with the given variant: the
    JVM executable, JVM arguments, main class and then game arguments.

    :raises ComponentNotFoundError: If the state lacks the runtime or game component.
    :raises ArgumentsNotFoundError: If the metadata has no game arguments.
    """
    java = target.state.get_java("java")
    classpath = target.classpath()
    return [
        java.path,
        *target.jvm_arguments(classpath),
        target.main_class(),
        *target.game_arguments(username),
    ]


def format_classpath(paths: List[Path]) -> str:
    """Join class path entries with the separator of the current platform.
    """
    return os.pathsep.join(map(str, paths))


class PathNotFoundError(Exception):
    """Raised when an unknown path role is requested from a context.
    """
    def __init__(self, role: str) -> None:
        self.role = role

    def __str__(self) -> str:
        return repr(self.role)

class VersionNotFoundError(Exception):
    """Raised when a version was not found. The version that was not found is given.
    """
    def __init__(self, version: str) -> None:
        self.version = version

    def __str__(self) -> str:
        return repr(self.version)

class LibraryNoClassifiersError(Exception):
    """Raised when a library declares natives but has no classifiers to download them,
    this happens with malformed metadata.
    """
    def __init__(self, name: str) -> None:
        self.name = name

    def __str__(self) -> str:
        return repr(self.name)

class ArgumentsNotFoundError(Exception):
    """Raised when metadata has no arguments for a required group ("game").
    """
    def __init__(self, group: str) -> None:
        self.group = group

    def __str__(self) -> str:
        return repr(self.group)

class DownloadError(Exception):
    """Raised when the downloader failed to download some entries.
    """
    def __init__(self, errors: List[Tuple[DownloadEntry, str, Optional[Exception]]]) -> None:
        self.errors = errors

    def __str__(self) -> str:
        return repr(self.errors)


class VersionEvent:
    """Base class for events regarding version.
    """
    __slots__ = "version",
    def __init__(self, version: str) -> None:
        self.version = version

class VersionLoadingEvent(VersionEvent):
    """Event triggered when a version is being loaded.
    """
    __slots__ = tuple()

class VersionFetchingEvent(VersionEvent):
    """Event triggered when a version's metadata is not cached and is being fetched.
    """
    __slots__ = tuple()

class VersionLoadedEvent(VersionEvent):
    """Event triggered when a version has been successfully loaded.
    """
    __slots__ = "fetched",
    def __init__(self, version: str, fetched: bool) -> None:
        super().__init__(version)
        self.fetched = fetched

class StateWrittenEvent:
    """Event triggered when the state of the instance has been written.
    """
    __slots__ = "instance_dir", "components"
    def __init__(self, instance_dir: Path, components: List[str]) -> None:
        self.instance_dir = instance_dir
        self.components = components

class JarFoundEvent:
    """Event triggered when the game's JAR file has been checked, the JAR is missing or
    invalid if it needs download.
    """
    __slots__ = "download",
    def __init__(self, download: bool) -> None:
        self.download = download

class LibrariesResolvedEvent:
    """Event triggered when all libraries has been resolved, giving the number of
    libraries and natives archives to download.
    """
    __slots__ = "libs_count", "natives_count"
    def __init__(self, libs_count: int, natives_count: int) -> None:
        self.libs_count = libs_count
        self.natives_count = natives_count

class AssetsResolveEvent:
    """Event triggered when assets start being resolved (count is none) and when they
    have been resolved, count is then the number of assets to download.
    """
    __slots__ = "index_version", "count"
    def __init__(self, index_version: str, count: Optional[int]) -> None:
        self.index_version = index_version
        self.count = count

class DownloadStartEvent:
    __slots__ = "threads_count", "entries_count", "size"
    def __init__(self, threads_count: int, entries_count: int, size: int) -> None:
        self.threads_count = threads_count
        self.entries_count = entries_count
        self.size = size

class DownloadProgressEvent:
    __slots__ = "thread_id", "count", "entry", "size", "speed", "done"
    def __init__(self, thread_id: int, count: int, entry: DownloadEntry, size: int, speed: float, done: bool) -> None:
        self.thread_id = thread_id
        self.count = count
        self.entry = entry
        self.size = size
        self.speed = speed
        self.done = done

class DownloadCompleteEvent:
    __slots__ = tuple()

class NativesCleanedEvent:
    """Event triggered after the natives directory has been cleaned.
    """
    __slots__ = "natives_dir", "removed_files", "removed_dirs"
    def __init__(self, natives_dir: Path, removed_files: int, removed_dirs: int) -> None:
        self.natives_dir = natives_dir
        self.removed_files = removed_files
        self.removed_dirs = removed_dirs
