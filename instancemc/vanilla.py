"""Implementation of the download and launch contracts for the vanilla game, resolving
versions from the official catalog.
"""

from pathlib import Path

from .standard import Context, Watcher, Downloadable, Launchable, format_classpath, \
    VersionLoadingEvent, VersionFetchingEvent, VersionLoadedEvent, JarFoundEvent, \
    LibrariesResolvedEvent, AssetsResolveEvent, \
    VersionNotFoundError, LibraryNoClassifiersError, ArgumentsNotFoundError
from .manifest import VersionManifest, VersionDescriptor, BuildManifest, AssetManifest, \
    ManifestDecodeError, decode_json, cache_or_fetch
from .download import DownloadList, DownloadEntry
from .state import State, JavaComponent, GameComponent
from .auth import AccountStore, Account
from .util import get_os_name, get_arch_bits, is_file_valid, replace_list_vars, \
    jvm_bin_filename
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Optional, List


RESOURCES_URL = "https://resources.download.minecraft.net/"

# Name of the game component in the state, also used as the namespace of the
# manifests cache.
GAME_COMPONENT = "net.minecraft"

PLAN_RETRIES = 5


class Vanilla(Downloadable, Launchable):
    """The vanilla game variant. The build manifest must be resolved with `resolve`
    before collecting the download plan or building arguments, this is done implicitly
    by the methods that need it.
    """

    def __init__(self,
        context: Context,
        version: Optional[str] = None, *,
        catalog: Optional[VersionManifest] = None,
        state: Optional[State] = None,
        os_name: Optional[str] = None,
        arch_bits: Optional[int] = None,
        jvm_path: Optional[str] = None,
        jvm_args: Optional[str] = None
    ) -> None:
        """Construct the variant for the given instance's context.

        :param context: The context of the instance.
        :param version: The version to resolve, the latest release if none.
        :param catalog: The catalog to resolve versions from, defaults to the official
        catalog, cached in the metadata directory.
        :param state: The installation state, read back from the instance before
        launching, defaults to an empty state.
        :param os_name: The canonical name of the OS to install the game for, defaults to
        the running OS.
        :param arch_bits: The pointer width, used to select some native archives, defaults
        to the running system's one.
        :param jvm_path: Path to the JVM executable recorded in the state, defaults to
        the platform's executable name.
        :param jvm_args: Extra JVM arguments recorded in the state.
        """

        self.context = context
        self.version = version
        self.catalog = VersionManifest(context.get("meta") / "version_manifest.json") if catalog is None else catalog
        self.state = State() if state is None else state
        self.os_name = get_os_name() if os_name is None else os_name
        self.arch_bits = get_arch_bits() if arch_bits is None else arch_bits
        self.jvm_path = jvm_path
        self.jvm_args = jvm_args

        self.descriptor: Optional[VersionDescriptor] = None
        self.manifest: Optional[BuildManifest] = None

    @classmethod
    def from_state(cls, context: Context, **kwargs) -> "Vanilla":
        """Construct the variant from the state of the instance, the version to resolve
        is the installed one.

        :raises ComponentNotFoundError: If the instance has no game component.
        """
        state = State.load(context.get("instance"))
        version = state.get_game(GAME_COMPONENT).version
        return cls(context, version, state=state, **kwargs)

    def resolve(self, watcher: Optional[Watcher] = None) -> BuildManifest:
        """Resolve the version against the catalog and load its build manifest, from
        the manifests cache if present.

        :raises VersionNotFoundError: If the version is not in the catalog.
        :raises ManifestDecodeError: If the build manifest cannot be decoded.
        """

        watcher = watcher or Watcher()

        if self.version is None:
            descriptor = self.catalog.latest(False)
        else:
            for descriptor in self.catalog.list_versions(True):
                if descriptor.id == self.version:
                    break
            else:
                raise VersionNotFoundError(self.version)

        watcher.handle(VersionLoadingEvent(descriptor.id))

        fetched = False
        def fetch(url: str) -> bytes:
            nonlocal fetched
            fetched = True
            watcher.handle(VersionFetchingEvent(descriptor.id))
            return self.catalog.fetch_manifest(url)

        cache_file = self.context.get("meta") / GAME_COMPONENT / f"{descriptor.id}.json"
        data = decode_json(cache_or_fetch(cache_file, descriptor.url, fetch), str(cache_file))

        try:
            manifest = BuildManifest.parse(data)
        except ValueError as error:
            raise ManifestDecodeError(str(cache_file), str(error))

        self.descriptor = descriptor
        self.manifest = manifest
        watcher.handle(VersionLoadedEvent(descriptor.id, fetched))
        return manifest

    def _ensure_manifest(self) -> BuildManifest:
        if self.manifest is None:
            return self.resolve()
        return self.manifest

    def client_jar(self) -> Path:
        """Path of the client JAR file of the resolved version.
        """
        version_id = self._ensure_manifest().id
        return self.context.get("libraries") / "com" / "mojang" / "minecraft" / version_id / f"minecraft-{version_id}-client.jar"

    def initialize_state(self, state: State) -> None:
        manifest = self._ensure_manifest()
        state.insert("java", JavaComponent(self.jvm_path or jvm_bin_filename, self.jvm_args))
        state.insert(GAME_COMPONENT, GameComponent(manifest.id))
        self.state = state

    def collect_plan(self, watcher: Watcher) -> DownloadList:
        """Compute the download plan of the resolved version: the client JAR, libraries
        and native archives for the OS of this variant, and assets. Only missing or
        invalid files are downloaded, except native archives that are always extracted
        again.

        :raises LibraryNoClassifiersError: If a library declares natives for the OS but
        has no classifiers.
        :raises ManifestDecodeError: If the assets index cannot be decoded.
        """

        manifest = self._ensure_manifest()
        plan = DownloadList(PLAN_RETRIES)

        client_jar = self.client_jar()
        client = manifest.client
        client_download = not is_file_valid(client_jar, client.sha1)
        if client_download:
            plan.add(DownloadEntry(client.url, client_jar, size=client.size, sha1=client.sha1, name=f"{manifest.id}.jar"))
        watcher.handle(JarFoundEvent(client_download))

        libraries_dir = self.context.get("libraries")
        natives_dir = self.context.get("natives")
        libs_count = 0
        natives_count = 0

        for lib in manifest.libraries:

            if lib.artifact is not None:
                lib_path = libraries_dir / lib.artifact.path
                if not is_file_valid(lib_path, lib.artifact.sha1):
                    if plan.add(DownloadEntry(lib.artifact.url, lib_path, size=lib.artifact.size, sha1=lib.artifact.sha1, name=lib.name)):
                        libs_count += 1

            classifier = lib.native_classifier(self.os_name, self.arch_bits)
            if classifier is not None:
                if lib.classifiers is None:
                    raise LibraryNoClassifiersError(lib.name)
                native = lib.classifiers.get(classifier)
                if native is not None:
                    if plan.add(DownloadEntry(native.url, natives_dir, size=native.size, sha1=native.sha1, name=f"{lib.name}:{classifier}", unzip=True)):
                        natives_count += 1

        watcher.handle(LibrariesResolvedEvent(libs_count, natives_count))

        self._collect_assets(manifest, plan, watcher)
        return plan

    def _collect_assets(self, manifest: BuildManifest, plan: DownloadList, watcher: Watcher) -> None:

        asset_index = manifest.asset_index
        watcher.handle(AssetsResolveEvent(asset_index.id, None))

        # The index is always fetched again because it's small and may change.
        index_file = self.context.get("assets") / "indexes" / f"{asset_index.id}.json"
        data = decode_json(self.catalog.fetch_and_save(asset_index.url, index_file, sha1=asset_index.sha1), asset_index.url)

        try:
            assets = AssetManifest.parse(data)
        except ValueError as error:
            raise ManifestDecodeError(asset_index.url, str(error))

        if asset_index.is_legacy():
            base_dir = self.context.get("resources")
        else:
            base_dir = self.context.get("assets") / "objects"

        count = 0
        for asset_id, asset in assets.objects.items():

            hash_prefix = asset.hash[:2]
            if asset_index.is_legacy():
                asset_path = base_dir / asset_id
            else:
                asset_path = base_dir / hash_prefix / asset.hash

            # Present assets are only checked against their size, their digest is
            # checked once downloaded.
            try:
                if asset_path.stat().st_size == asset.size:
                    continue
            except OSError:
                pass

            if plan.add(DownloadEntry(f"{RESOURCES_URL}{hash_prefix}/{asset.hash}", asset_path, size=asset.size, sha1=asset.hash, name=asset_id)):
                count += 1

        watcher.handle(AssetsResolveEvent(asset_index.id, count))

    def main_class(self) -> str:
        return self._ensure_manifest().main_class

    def game_arguments(self, username: str) -> List[str]:
        """Build game arguments for the given player.

        :raises ComponentNotFoundError: If the state has no game component.
        :raises ArgumentsNotFoundError: If the build manifest has no game arguments.
        """

        version = self.state.get_game(GAME_COMPONENT).version
        manifest = self._ensure_manifest()

        templates = manifest.templates("game", self.os_name)
        if templates is None:
            raise ArgumentsNotFoundError("game")

        account = AccountStore.load(self.context.get("accounts")).get_account(username)
        if account is None:
            account = Account.offline(username)

        return replace_list_vars(templates, {
            "auth_player_name": username,
            "version_name": version,
            "game_directory": ".",
            "assets_root": str(self.context.get("assets")),
            "assets_index_name": manifest.asset_index.id,
            "auth_uuid": account.uuid,
            "auth_access_token": account.access_token,
            "user_type": "mojang",
            "version_type": manifest.type,
            "user_properties": "{}",
            "game_assets": str(self.context.get("resources")),
            "auth_session": "{}",
        })

    def classpath(self) -> str:
        """Build the class path of the game, libraries are filtered by their rules and
        the client JAR is always last.
        """
        libraries_dir = self.context.get("libraries")
        paths = [
            libraries_dir / lib.artifact.path
            for lib in self._ensure_manifest().libraries
            if lib.artifact is not None and lib.is_allowed(self.os_name)
        ]
        paths.append(self.client_jar())
        return format_classpath(paths)

    def jvm_arguments(self, classpath: str) -> List[str]:
        """Build JVM arguments with the given class path. Versions with no JVM
        arguments get a minimal set of arguments. Extra arguments of the runtime
        component are appended.

        :raises ComponentNotFoundError: If the state has no runtime component.
        """

        natives_dir = str(self.context.get("natives"))
        templates = self._ensure_manifest().templates("jvm", self.os_name)

        if templates is not None:
            args = replace_list_vars(templates, {
                "natives_directory": natives_dir,
                "launcher_name": LAUNCHER_NAME,
                "launcher_version": LAUNCHER_VERSION,
                "classpath": classpath,
            })
        else:
            args = [f"-Djava.library.path={natives_dir}", "-cp", classpath]

        java = self.state.get_java("java")
        if java.arguments is not None:
            args.extend(java.arguments.split())

        return args

    def __repr__(self) -> str:
        return f"<Vanilla {self.version or 'latest'}>"


def search_versions(catalog: VersionManifest, query: Optional[str] = None, *,
    include_snapshots: bool = True
) -> List[VersionDescriptor]:
    """Search versions of the catalog whose identifier contains the query, the latest
    release and snapshot aliases are also accepted as query.
    """

    if query in ("release", "snapshot"):
        return [catalog.latest(query == "snapshot")]

    return [
        version for version in catalog.list_versions(include_snapshots)
        if query is None or query in version.id
    ]

