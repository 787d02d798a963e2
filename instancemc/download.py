"""Definition of the concurrent fetch engine, used to download all files of a download
plan in batch with multithreading, and to extract native archives.
"""

from http.client import HTTPConnection, HTTPSConnection, HTTPException
from zipfile import ZipFile, BadZipFile
from threading import Thread, Lock, Event
from queue import Queue, Empty
from pathlib import Path
import urllib.parse
import hashlib
import shutil
import time

from .http import get_ssl_context
from .util import native_extensions
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Optional, Dict, List, Tuple, Union, Iterator, Set


DEFAULT_THREADS_COUNT = 10


class DownloadEntry:
    """A download entry of a download list. If `unzip` is true, the destination is a
    directory where the downloaded archive is extracted, the archive itself is not kept.
    """

    __slots__ = "url", "size", "sha1", "dst", "name", "unzip"

    def __init__(self,
        url: str,
        dst: Path, *,
        size: Optional[int] = None,
        sha1: Optional[str] = None,
        name: Optional[str] = None,
        unzip: bool = False
    ) -> None:
        self.url = url
        self.dst = dst
        self.size = size
        self.sha1 = sha1
        self.name = url if name is None else name
        self.unzip = unzip

    def __repr__(self) -> str:
        return f"<DownloadEntry {self.name}>"

    def __hash__(self) -> int:
        # Making size and sha1 in the hash is useful to make them,
        # this means that once added to a dictionary, these attributes
        # should not be modified.
        return hash((self.url, self.dst, self.size, self.sha1, self.unzip))

    def __eq__(self, other):
        return isinstance(other, DownloadEntry) and \
            (self.url, self.dst, self.size, self.sha1, self.unzip) == \
            (other.url, other.dst, other.size, other.sha1, other.unzip)


class _DownloadEntry:
    """Internal class with already parsed URL to speed up processing and prevent
    unsupported URL schemes.
    """

    __slots__ = "https", "host", "port", "entry"

    def __init__(self, https: bool, host: str, port: Optional[int], entry: DownloadEntry) -> None:
        self.https = https
        self.host = host
        self.port = port
        self.entry = entry

    @classmethod
    def from_entry(cls, entry: DownloadEntry) -> "_DownloadEntry":

        # We only support HTTP/HTTPS
        url_parsed = urllib.parse.urlparse(entry.url)
        if url_parsed.scheme not in ("http", "https"):
            raise ValueError(f"unsupported scheme '{url_parsed.scheme}://' from url {entry.url}")

        return cls(
            url_parsed.scheme == "https",
            url_parsed.hostname or "",
            url_parsed.port,
            entry)


class DownloadResult:
    """Base class for download result yielded by `DownloadList.download` function.
    """
    __slots__ = "thread_id", "entry"
    def __init__(self, thread_id: int, entry: DownloadEntry) -> None:
        self.thread_id = thread_id
        self.entry = entry


class DownloadResultProgress(DownloadResult):
    """Subclass of result when a file's download has been successful.
    """
    __slots__ = "size", "speed", "done"
    def __init__(self, thread_id: int, entry: DownloadEntry, size: int, speed: float, done: bool) -> None:
        super().__init__(thread_id, entry)
        self.size = size
        self.speed = speed
        self.done = done


class DownloadResultError(DownloadResult):
    """Subclass of result when a file's download has failed after all of its tries, the
    error code is indicated and the optional original error is given.
    """

    CONNECTION = "connection"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    INVALID_SIZE = "invalid_size"
    INVALID_SHA1 = "invalid_sha1"
    INVALID_ARCHIVE = "invalid_archive"

    __slots__ = "code", "origin"

    def __init__(self, thread_id: int, entry: DownloadEntry, code: str, origin: Optional[Exception]) -> None:
        super().__init__(thread_id, entry)
        self.code = code
        self.origin = origin


class DownloadList:
    """A download list, composed of entries that can be downloaded all at once in batch
    with multithreading. Every entry is tried at most `retries` times.
    """

    __slots__ = "entries", "count", "size", "retries", "_keys"

    def __init__(self, retries: int = 3):
        self.entries: List[_DownloadEntry] = []
        self.count = 0
        self.size = 0
        self.retries = retries
        self._keys: Set[Tuple[Path, Optional[str]]] = set()

    def clear(self) -> None:
        """Clear the download entry, removing all entries and computed count/size.
        """
        self.entries.clear()
        self._keys.clear()
        self.count = 0
        self.size = 0

    def add(self, entry: DownloadEntry) -> bool:
        """Add a download entry to this list. An entry is not added if another entry
        already has the same destination file, archives to extract are only compared by
        their URL because they share the same destination directory.

        :param entry: The entry to add.
        :return: True if the entry has been added.
        """

        key = (entry.dst, entry.url if entry.unzip else None)
        if key in self._keys:
            return False

        self.entries.append(_DownloadEntry.from_entry(entry))
        self._keys.add(key)
        self.count += 1
        if entry.size is not None:
            self.size += entry.size
        return True

    def __iter__(self) -> Iterator[DownloadEntry]:
        return (raw_entry.entry for raw_entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def download(self, threads_count: int = DEFAULT_THREADS_COUNT, *,
        partial_progress: bool = False,
        fail_fast: bool = True
    ) -> Iterator[Tuple[int, DownloadResult]]:
        """Execute the download.

        :param threads_count: The number of threads to run the download on.
        :param partial_progress: Set to true to be able to receive partial progress update
        on unfinished files, if this is false, DownloadResultProgress.done should be true.
        :param fail_fast: Stop the download after the first error result, entries that
        are not yet started are dropped and files already downloaded are kept.
        :return: This function returns an iterator that yields a tuple that contain the
        total number of results and the new result that came in.
        """

        # Sort our entries in order to download big files first, this is allows better
        # parallelization at start and avoid too much blocking at the end of the download.
        # Note that entries without size are considered 1 Mio, to download early.
        self.entries.sort(key=lambda e: e.entry.size or 1048576, reverse=True)

        entries_count = len(self.entries)
        if not entries_count or threads_count < 1:
            return

        entries_queue = Queue()
        result_queue = Queue()
        extract_lock = Lock()
        abort = Event() if fail_fast else None

        for th_id in range(threads_count):
            th = Thread(target=_download_thread_wrapper,
                        args=(th_id, entries_queue, result_queue, self.retries, partial_progress, extract_lock, abort),
                        daemon=True,
                        name=f"Download Thread {th_id}")
            th.start()

        result_count = 0

        for entry in self.entries:
            entries_queue.put(entry)

        crash = None

        while result_count < entries_count:

            result = result_queue.get()
            if isinstance(result, _DownloadThreadCrash):
                crash = result
                break

            if not isinstance(result, DownloadResultProgress) or result.done:
                result_count += 1

            yield result_count, result

            if fail_fast and isinstance(result, DownloadResultError):
                # Drop all entries not yet taken by a thread.
                try:
                    while True:
                        entries_queue.get_nowait()
                except Empty:
                    pass
                break

        # Send 'threads_count' sentinels.
        # We intentionally don't join thread because it takes some time for unknown
        # reason. And we don't care of these threads because these are daemon ones.
        for th_id in range(threads_count):
            entries_queue.put(None)

        if crash is not None:
            raise ValueError(f"unexpected crash from thread {crash.thread_id}", crash.origin)


class _DownloadThreadCrash:
    """Unexpected exception happening in a thread, this is the result of a bad logic
    from programmer.
    """
    __slots__ = "thread_id", "origin",
    def __init__(self, thread_id: int, origin: Optional[BaseException]) -> None:
        self.thread_id = thread_id
        self.origin = origin


def _download_thread_wrapper(
    thread_id: int,
    entries_queue: Queue,
    result_queue: Queue,
    retries: int,
    partial_progress: bool,
    extract_lock: Lock,
    abort: Optional[Event]
) -> None:
    """Wrapper for the download thread that basically ensures that any unexpected error
    sends a signal (DownloadThreadCrash) to the master to signal the crash.
    """
    try:
        _download_thread(thread_id, entries_queue, result_queue, retries, partial_progress, extract_lock, abort)
    except BaseException as e:
        result_queue.put(_DownloadThreadCrash(thread_id, e))
        raise


def _download_thread(
    thread_id: int,
    entries_queue: Queue,
    result_queue: Queue,
    retries: int,
    partial_progress: bool,
    extract_lock: Lock,
    abort: Optional[Event]
) -> None:
    """This function is internally used for multi-threaded download.

    :param entries_queue: Where entries to download are received.
    :param result_queue: Where threads send progress update.
    :param retries: Maximum tries count for a single entry.
    :param extract_lock: Lock held while extracting archives, because archives may be
    extracted to the same directory.
    :param abort: Shared event set by the first thread reporting an error, once set the
    entries taken from the queue are dropped without being downloaded. None if the
    download doesn't stop on the first error.
    """

    # Cache for connections depending on host and https
    conn_cache: Dict[Tuple[bool, str, Optional[int]], Union[HTTPConnection, HTTPSConnection]] = {}

    # Each thread has its own buffer.
    buffer_cap = 65536
    buffer_back = bytearray(buffer_cap)
    buffer = memoryview(buffer_back)

    ctx = get_ssl_context()
    headers = {"User-Agent": f"{LAUNCHER_NAME}/{LAUNCHER_VERSION}"}

    max_try_count = max(1, retries)

    # For speed calculation.
    speed_update_interval = 0.25
    speed_smoothing = 0.3
    speed_last_time = 0.0
    speed_last_size = 0
    speed_current_size = 0
    speed = 0.0

    while True:

        raw_entry: Optional[_DownloadEntry] = entries_queue.get()

        # None is a sentinel to stop the thread, it should be consumed ONCE.
        if raw_entry is None:
            break

        if abort is not None and abort.is_set():
            continue

        conn_key = (raw_entry.https, raw_entry.host, raw_entry.port)
        entry = raw_entry.entry

        # Archives are downloaded to a temporary file in their destination directory.
        file_path = entry.dst / f".{LAUNCHER_NAME}-{thread_id}.part" if entry.unzip else entry.dst

        # Get connection from cache or create it.
        conn = conn_cache.get(conn_key)

        last_error: Optional[str] = None
        last_error_origin: Optional[Exception] = None
        try_num = 0

        while True:

            try_num += 1
            if try_num > max_try_count:
                # Retrying implies that we have set an error.
                assert last_error is not None
                # Set before reporting, so that no other entry starts after the error.
                if abort is not None:
                    abort.set()
                result_queue.put(DownloadResultError(thread_id, entry, last_error, last_error_origin))
                break

            # If there is no cached connection or the connection has been reset.
            if conn is None:
                if raw_entry.https:
                    conn = HTTPSConnection(raw_entry.host, raw_entry.port, context=ctx)
                else:
                    conn = HTTPConnection(raw_entry.host, raw_entry.port)
                # Cache the connection for later use.
                conn_cache[conn_key] = conn

            try:

                conn.request("GET", entry.url, headers=headers)
                res = conn.getresponse()

                if res.status != 200:

                    # This loop is used to skip all bytes in the stream,
                    # and allow further request.
                    while res.readinto(buffer):
                        pass

                    if res.status in (301, 302, 307, 308):

                        redirect_url = urllib.parse.urljoin(entry.url, res.headers["location"])
                        redirect_entry = DownloadEntry(
                            redirect_url,
                            entry.dst,
                            size=entry.size,
                            sha1=entry.sha1,
                            name=entry.name,
                            unzip=entry.unzip)

                        entries_queue.put(_DownloadEntry.from_entry(redirect_entry))
                        break  # Abort on redirect

                    if 400 <= res.status < 500:
                        # Client errors will not change when retrying, set the try
                        # number to the maximum in order to fail just after.
                        last_error = DownloadResultError.NOT_FOUND
                        last_error_origin = None
                        try_num = max_try_count
                        continue

                    last_error = DownloadResultError.SERVER_ERROR
                    last_error_origin = None
                    continue

                sha1 = None if entry.sha1 is None else hashlib.sha1()
                size = 0

                file_path.parent.mkdir(parents=True, exist_ok=True)
                with file_path.open("wb") as dst_fp:

                    while True:

                        read_len = res.readinto(buffer)
                        if not read_len:
                            break

                        size += read_len
                        speed_current_size += read_len
                        buffer_view = buffer[:read_len]
                        if sha1 is not None:
                            sha1.update(buffer_view)
                        dst_fp.write(buffer_view)

                        # Update speed calculation at given interval.
                        now = time.monotonic()
                        speed_elapsed_time = now - speed_last_time
                        if speed_elapsed_time > speed_update_interval:
                            speed_elapsed_size = speed_current_size - speed_last_size
                            current_speed = speed_elapsed_size / speed_elapsed_time
                            speed = speed_smoothing * current_speed + (1 - speed_smoothing) * speed
                            speed_last_time = now
                            speed_last_size = speed_current_size

                        # Filled the whole buffer, send a progress update because we'll
                        # likely need another reading.
                        if partial_progress and read_len == buffer_cap:
                            result_queue.put(DownloadResultProgress(thread_id, entry, size, speed, False))

                # Checking size and sha1 if relevant, if no error we send the full
                # progress.
                if entry.size is not None and size != entry.size:
                    last_error = DownloadResultError.INVALID_SIZE
                    last_error_origin = None
                elif sha1 is not None and sha1.hexdigest() != entry.sha1:
                    last_error = DownloadResultError.INVALID_SHA1
                    last_error_origin = None
                else:

                    if entry.unzip:
                        try:
                            with extract_lock, ZipFile(file_path) as archive:
                                archive.extractall(entry.dst)
                        except BadZipFile as e:
                            last_error = DownloadResultError.INVALID_ARCHIVE
                            last_error_origin = e
                        else:
                            file_path.unlink()
                            result_queue.put(DownloadResultProgress(thread_id, entry, size, speed, True))
                            break

                    else:
                        result_queue.put(DownloadResultProgress(thread_id, entry, size, speed, True))
                        # Breaking means success, to avoid unlinking the file!
                        break

            except (ConnectionError, OSError, HTTPException) as e:

                # On errors, we just throw away the old connection and create a new one.
                # Raw but efficient way of resetting the potentially broken state...
                conn.close()
                conn = None
                conn_cache.pop(conn_key, None)

                last_error = DownloadResultError.CONNECTION
                last_error_origin = e

            # We are here only when the file download has started but checks have failed,
            # then we should remove the file.
            try:
                file_path.unlink()
            except FileNotFoundError:
                pass  # Not a problem if the file isn't present.


def cleanup_natives(natives_dir: Path, os_name: Optional[str]) -> Tuple[int, int]:
    """Clean the natives directory after extraction of native archives. Every file that
    is not a dynamic library for the given OS is removed, and every directory is
    removed with its content. Errors are propagated.

    :param natives_dir: The natives directory, nothing is done if it doesn't exist.
    :param os_name: The canonical OS name, used to know dynamic library extensions.
    :return: The number of removed files and removed directories.
    """

    if not natives_dir.is_dir():
        return 0, 0

    extensions = native_extensions(os_name)
    removed_files = 0
    removed_dirs = 0

    for child in natives_dir.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
            removed_dirs += 1
        elif not child.name.endswith(extensions):
            child.unlink()
            removed_files += 1

    return removed_files, removed_dirs
