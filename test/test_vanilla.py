"""Tests of the vanilla variant, with a fake catalog and a local file server instead of
official services.
"""

from pathlib import Path
import json
import os
import pytest

from instancemc.standard import Context, Watcher, download, build_command, \
    VersionNotFoundError, LibraryNoClassifiersError, ArgumentsNotFoundError, DownloadError
from instancemc.manifest import VersionDescriptor, ManifestDecodeError
from instancemc.state import State, JavaComponent, GameComponent, ComponentNotFoundError
from instancemc.auth import AccountStore, Account
from instancemc.vanilla import Vanilla, search_versions

from conftest import FileServer, sha1_of, make_zip

from typing import Optional, Dict, List


class FakeCatalog:
    """A catalog of versions whose metadata and assets indexes are in memory.
    """

    def __init__(self, manifests: Dict[str, dict], indexes: Optional[Dict[str, dict]] = None) -> None:
        self.manifests = manifests
        self.indexes = indexes or {}
        self.fetched: List[str] = []

    def list_versions(self, include_snapshots: bool = True) -> List[VersionDescriptor]:
        return [
            VersionDescriptor(version_id, f"https://example.com/{version_id}.json", manifest.get("type", "release"))
            for version_id, manifest in self.manifests.items()
            if include_snapshots or manifest.get("type", "release") == "release"
        ]

    def latest(self, include_snapshots: bool = False) -> VersionDescriptor:
        return self.list_versions(include_snapshots)[-1]

    def fetch_manifest(self, url: str) -> bytes:
        self.fetched.append(url)
        return json.dumps(self.manifests[url.rsplit("/", 1)[1][:-5]]).encode()

    def fetch_and_save(self, url: str, dst: Path, *, sha1: Optional[str] = None) -> bytes:
        self.fetched.append(url)
        data = json.dumps(self.indexes[url]).encode()
        dst.parent.mkdir(parents=True, exist_ok=True)
        dst.write_bytes(data)
        return data


def make_manifest(version_id: str, *,
    libraries: Optional[list] = None,
    asset_index: str = "legacy",
    game_args: Optional[str] = "--username ${auth_player_name} --version ${version_name}",
    arguments: Optional[dict] = None,
    client_url: str = "https://example.com/client.jar",
    client_sha1: Optional[str] = None,
    version_type: str = "release"
) -> dict:
    """Build the metadata of a version, legacy game arguments are used unless modern
    arguments are given.
    """

    data = {
        "id": version_id,
        "type": version_type,
        "mainClass": "net.minecraft.client.main.Main",
        "assetIndex": {"id": asset_index, "url": f"https://example.com/indexes/{asset_index}.json"},
        "downloads": {"client": {"url": client_url, "sha1": client_sha1}},
        "libraries": libraries or [],
    }

    if arguments is not None:
        data["arguments"] = arguments
    elif game_args is not None:
        data["minecraftArguments"] = game_args

    return data


def make_library(name: str, path: Optional[str], url: str = "https://example.com/lib.jar", *,
    sha1: Optional[str] = None,
    natives: Optional[Dict[str, str]] = None,
    classifiers: Optional[Dict[str, dict]] = None,
    rules: Optional[list] = None
) -> dict:

    data = {"name": name, "downloads": {}}
    if path is not None:
        data["downloads"]["artifact"] = {"path": path, "url": url, "sha1": sha1}
    if classifiers is not None:
        data["downloads"]["classifiers"] = classifiers
    if natives is not None:
        data["natives"] = natives
    if rules is not None:
        data["rules"] = rules
    return data


class RecordWatcher(Watcher):

    def __init__(self) -> None:
        self.events = []

    def handle(self, event) -> None:
        self.events.append(event)


def test_resolve(context: Context):

    catalog = FakeCatalog({
        "1.16.4": make_manifest("1.16.4"),
        "20w48a": make_manifest("20w48a", version_type="snapshot"),
    })

    vanilla = Vanilla(context, "1.16.4", catalog=catalog)
    manifest = vanilla.resolve()
    assert manifest.id == "1.16.4"
    assert catalog.fetched == ["https://example.com/1.16.4.json"]
    assert (context.get("meta") / "net.minecraft" / "1.16.4.json").is_file()

    # Second resolution uses the cache.
    Vanilla(context, "1.16.4", catalog=catalog).resolve()
    assert len(catalog.fetched) == 1

    # Snapshots are also resolved.
    assert Vanilla(context, "20w48a", catalog=catalog).resolve().type == "snapshot"

    # Latest release when no version is given.
    assert Vanilla(context, catalog=catalog).resolve().id == "1.16.4"

    with pytest.raises(VersionNotFoundError) as exc_info:
        Vanilla(context, "1.16.5", catalog=catalog).resolve()
    assert exc_info.value.version == "1.16.5"


def test_resolve_invalid_cache(context: Context):

    catalog = FakeCatalog({"1.16.4": make_manifest("1.16.4")})

    cache_file = context.get("meta") / "net.minecraft" / "1.16.4.json"
    cache_file.parent.mkdir(parents=True)

    cache_file.write_text("{not json")
    with pytest.raises(ManifestDecodeError):
        Vanilla(context, "1.16.4", catalog=catalog).resolve()

    cache_file.write_text('{"id": "1.16.4"}')
    with pytest.raises(ManifestDecodeError):
        Vanilla(context, "1.16.4", catalog=catalog).resolve()

    assert catalog.fetched == []


def _scenario(context: Context, server: FileServer, os_name: str, monkeypatch) -> Vanilla:
    """One library with a windows classifier and a legacy assets index with one object.
    """

    client_url, client_sha1 = server.serve("/client.jar", b"client jar")
    lib_url, lib_sha1 = server.serve("/lwjgl.jar", b"lwjgl jar")
    natives_url, natives_sha1 = server.serve("/lwjgl-natives-windows.jar", make_zip({
        "lwjgl.dll": b"dll",
        "lwjgl64.dll": b"dll64",
        "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0",
        "readme.txt": b"readme",
    }))

    icon = b"icon data"
    icon_hash = sha1_of(icon)
    server.serve(f"/{icon_hash[:2]}/{icon_hash}", icon)
    monkeypatch.setattr("instancemc.vanilla.RESOURCES_URL", f"{server.base_url}/")

    library = make_library("org.lwjgl.lwjgl:lwjgl:2.9.4", "org/lwjgl/lwjgl/lwjgl/2.9.4/lwjgl-2.9.4.jar", lib_url,
        sha1=lib_sha1,
        natives={"windows": "natives-windows"},
        classifiers={"natives-windows": {"url": natives_url, "sha1": natives_sha1}})

    catalog = FakeCatalog(
        {"1.16.4": make_manifest("1.16.4", libraries=[library], client_url=client_url, client_sha1=client_sha1)},
        {"https://example.com/indexes/legacy.json": {"objects": {"icons/icon_16x16.png": {"hash": icon_hash, "size": len(icon)}}}})

    return Vanilla(context, "1.16.4", catalog=catalog, os_name=os_name, arch_bits=64)


@pytest.mark.parametrize("os_name, natives_count", [("windows", 1), ("linux", 0), ("macos", 0)])
def test_plan_scenario(context: Context, file_server: FileServer, monkeypatch, os_name: str, natives_count: int):

    vanilla = _scenario(context, file_server, os_name, monkeypatch)
    plan = vanilla.collect_plan(Watcher())
    entries = list(plan)

    libraries_dir = context.get("libraries")
    client_jar = libraries_dir / "com" / "mojang" / "minecraft" / "1.16.4" / "minecraft-1.16.4-client.jar"

    assert len(entries) == 3 + natives_count
    assert len({(e.dst, e.url) for e in entries}) == len(entries)
    assert [e for e in entries if e.dst == client_jar]
    assert [e for e in entries if e.dst == libraries_dir / "org/lwjgl/lwjgl/lwjgl/2.9.4/lwjgl-2.9.4.jar"]
    assert [e for e in entries if e.dst == context.get("resources") / "icons/icon_16x16.png"]
    assert len([e for e in entries if e.unzip and e.dst == context.get("natives")]) == natives_count
    assert plan.retries == 5

    # The assets index is always saved.
    assert (context.get("assets") / "indexes" / "legacy.json").is_file()


def test_download_scenario(context: Context, file_server: FileServer, monkeypatch):

    vanilla = _scenario(context, file_server, "windows", monkeypatch)
    watcher = RecordWatcher()
    state = download(vanilla, watcher=watcher, threads_count=2)

    assert state.get_game("net.minecraft").version == "1.16.4"
    assert state.get_java("java").path
    assert State.load(context.get("instance")).components == state.components

    natives_dir = context.get("natives")
    assert sorted(child.name for child in natives_dir.iterdir()) == ["lwjgl.dll", "lwjgl64.dll"]
    assert (context.get("resources") / "icons" / "icon_16x16.png").read_bytes() == b"icon data"

    event_types = [type(event).__name__ for event in watcher.events]
    assert event_types[0] == "StateWrittenEvent"
    assert event_types[-1] == "NativesCleanedEvent"
    assert "DownloadCompleteEvent" in event_types

    # Everything is installed, only native archives are extracted again.
    plan = vanilla.collect_plan(Watcher())
    assert [entry.unzip for entry in plan] == [True]


def test_download_scenario_idempotent(context: Context, file_server: FileServer, monkeypatch):

    vanilla = _scenario(context, file_server, "linux", monkeypatch)
    download(vanilla, threads_count=2)

    assert len(vanilla.collect_plan(Watcher())) == 0

    # Corrupted files are planned again.
    client_jar = vanilla.client_jar()
    client_jar.write_bytes(b"corrupted")
    (context.get("resources") / "icons" / "icon_16x16.png").unlink()

    plan = vanilla.collect_plan(Watcher())
    assert sorted(entry.dst.name for entry in plan) == ["icon_16x16.png", "minecraft-1.16.4-client.jar"]


def test_download_failure(context: Context, file_server: FileServer, monkeypatch):

    vanilla = _scenario(context, file_server, "linux", monkeypatch)
    del file_server.files["/lwjgl.jar"]

    with pytest.raises(DownloadError) as exc_info:
        download(vanilla, threads_count=1)

    assert [(entry.name, code) for entry, code, _origin in exc_info.value.errors] == \
        [("org.lwjgl.lwjgl:lwjgl:2.9.4", "not_found")]

    # The state is written before downloading.
    assert State.load(context.get("instance")).get_game("net.minecraft").version == "1.16.4"


def test_plan_modern_assets(context: Context):

    catalog = FakeCatalog(
        {"1.16.4": make_manifest("1.16.4", asset_index="1.16")},
        {"https://example.com/indexes/1.16.json": {"objects": {
            "icons/icon_16x16.png": {"hash": "bdf48ef6b5d0d23bbb02e17d04865216179f510a", "size": 3665},
            "icons/icon_16x16_copy.png": {"hash": "bdf48ef6b5d0d23bbb02e17d04865216179f510a", "size": 3665},
            "sounds/click.ogg": {"hash": "12cd1ef6b5d0d23bbb02e17d04865216179f510a", "size": 4},
        }}})

    objects_dir = context.get("assets") / "objects"
    present = objects_dir / "12" / "12cd1ef6b5d0d23bbb02e17d04865216179f510a"
    present.parent.mkdir(parents=True)
    present.write_bytes(b"data")

    watcher = RecordWatcher()
    plan = Vanilla(context, "1.16.4", catalog=catalog, os_name="linux").collect_plan(watcher)
    assets = [entry for entry in plan if entry.dst.parent.parent == objects_dir]

    # Objects sharing the same hash are downloaded once.
    assert len(assets) == 1
    assert assets[0].dst == objects_dir / "bd" / "bdf48ef6b5d0d23bbb02e17d04865216179f510a"
    assert assets[0].url == "https://resources.download.minecraft.net/bd/bdf48ef6b5d0d23bbb02e17d04865216179f510a"
    assert assets[0].sha1 == "bdf48ef6b5d0d23bbb02e17d04865216179f510a"

    resolved = [event for event in watcher.events if type(event).__name__ == "AssetsResolveEvent"]
    assert [event.count for event in resolved] == [None, 1]


def test_plan_no_classifiers(context: Context):

    library = make_library("org.lwjgl.lwjgl:lwjgl-platform:2.9.4", None, natives={"linux": "natives-linux"})
    catalog = FakeCatalog({"1.16.4": make_manifest("1.16.4", libraries=[library])}, {
        "https://example.com/indexes/legacy.json": {"objects": {}}
    })

    with pytest.raises(LibraryNoClassifiersError) as exc_info:
        Vanilla(context, "1.16.4", catalog=catalog, os_name="linux").collect_plan(Watcher())
    assert exc_info.value.name == "org.lwjgl.lwjgl:lwjgl-platform:2.9.4"

    # No natives for the OS is not an error, neither is an unknown OS.
    Vanilla(context, "1.16.4", catalog=catalog, os_name="windows").collect_plan(Watcher())
    Vanilla(context, "1.16.4", catalog=catalog, os_name="freebsd").collect_plan(Watcher())


def test_running_system_detection(context: Context, monkeypatch):

    monkeypatch.setattr("instancemc.vanilla.get_os_name", lambda: "macos")
    monkeypatch.setattr("instancemc.vanilla.get_arch_bits", lambda: 32)

    vanilla = Vanilla(context, "1.16.4", catalog=FakeCatalog({}, {}))
    assert (vanilla.os_name, vanilla.arch_bits) == ("macos", 32)

    vanilla = Vanilla(context, "1.16.4", catalog=FakeCatalog({}, {}), os_name="windows", arch_bits=64)
    assert (vanilla.os_name, vanilla.arch_bits) == ("windows", 64)


MODERN_ARGUMENTS = {
    "game": [
        "--username", "${auth_player_name}",
        "--version", "${version_name}",
        "--gameDir", "${game_directory}",
        "--assetsDir", "${assets_root}",
        "--assetIndex", "${assets_index_name}",
        "--uuid", "${auth_uuid}",
        "--accessToken", "${auth_access_token}",
        "--userType", "${user_type}",
        "--versionType", "${version_type}",
        "--width", "${resolution_width}",
        {"rules": [{"action": "allow", "features": {"is_demo_user": True}}], "value": "--demo"},
    ],
    "jvm": [
        {"rules": [{"action": "allow", "os": {"name": "windows"}}], "value": "-XX:HeapDumpPath=dump.hprof"},
        "-Djava.library.path=${natives_directory}",
        "-Dminecraft.launcher.brand=${launcher_name}",
        "-Dminecraft.launcher.version=${launcher_version}",
        "-cp",
        "${classpath}",
    ],
}

KNOWN_VARIABLES = (
    "auth_player_name", "version_name", "game_directory", "assets_root", "assets_index_name",
    "auth_uuid", "auth_access_token", "user_type", "version_type", "user_properties",
    "game_assets", "auth_session",
)


def _launchable(context: Context, os_name: str, **kwargs) -> Vanilla:

    libraries = [
        make_library("a:no-rules:1", "a/no-rules.jar"),
        make_library("b:windows-only:1", "b/windows-only.jar", rules=[{"action": "allow", "os": {"name": "windows"}}]),
        make_library("c:osx-only:1", "c/osx-only.jar", rules=[{"action": "allow", "os": {"name": "osx"}}]),
        make_library("d:not-osx:1", "d/not-osx.jar", rules=[{"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}}]),
        make_library("e:natives-only:1", None, natives={"windows": "natives-windows"}, classifiers={}),
    ]

    catalog = FakeCatalog({
        "1.16.4": make_manifest("1.16.4", libraries=libraries, asset_index="1.16", **kwargs),
    })

    state = State()
    state.insert("java", JavaComponent("/opt/java/bin/java", "-Xmx2G  -XX:+UseG1GC"))
    state.insert("net.minecraft", GameComponent("1.16.4"))

    return Vanilla(context, "1.16.4", catalog=catalog, state=state, os_name=os_name)


@pytest.mark.parametrize("os_name, expected", [
    ("linux", ["a/no-rules.jar", "d/not-osx.jar"]),
    ("windows", ["a/no-rules.jar", "b/windows-only.jar", "d/not-osx.jar"]),
    ("macos", ["a/no-rules.jar", "c/osx-only.jar"]),
])
def test_classpath(context: Context, os_name: str, expected: List[str]):

    vanilla = _launchable(context, os_name)
    classpath = vanilla.classpath().split(os.pathsep)

    libraries_dir = context.get("libraries")
    assert classpath == [str(libraries_dir / path) for path in expected] + [str(vanilla.client_jar())]


def test_game_arguments(context: Context):

    vanilla = _launchable(context, "linux", arguments=MODERN_ARGUMENTS)
    args = vanilla.game_arguments("Watson17")

    assert args[args.index("--username") + 1] == "Watson17"
    assert args[args.index("--version") + 1] == "1.16.4"
    assert args[args.index("--gameDir") + 1] == "."
    assert args[args.index("--assetsDir") + 1] == str(context.get("assets"))
    assert args[args.index("--assetIndex") + 1] == "1.16"
    assert args[args.index("--uuid") + 1] == Account.offline("Watson17").uuid
    assert args[args.index("--accessToken") + 1] == ""
    assert args[args.index("--userType") + 1] == "mojang"
    assert args[args.index("--versionType") + 1] == "release"
    assert "--demo" not in args

    # Unknown variables are kept.
    assert args[args.index("--width") + 1] == "${resolution_width}"

    for arg in args:
        for variable in KNOWN_VARIABLES:
            assert f"${{{variable}}}" not in arg


def test_game_arguments_legacy(context: Context):

    vanilla = _launchable(context, "linux", game_args="${auth_player_name} ${auth_session} "
        "--gameDir ${game_directory} --assetsDir ${game_assets} --userProperties ${user_properties}")

    assert vanilla.game_arguments("Watson17") == [
        "Watson17", "{}",
        "--gameDir", ".",
        "--assetsDir", str(context.get("resources")),
        "--userProperties", "{}",
    ]


def test_game_arguments_account(context: Context):

    store = AccountStore.load(context.get("accounts"))
    store.put(Account("Watson17", "e1d9d0eb0d6d4d2e8f4e3e5d2b1c0a99", "secret"))
    store.save()

    args = _launchable(context, "linux", arguments=MODERN_ARGUMENTS).game_arguments("watson17")
    assert args[args.index("--uuid") + 1] == "e1d9d0eb0d6d4d2e8f4e3e5d2b1c0a99"
    assert args[args.index("--accessToken") + 1] == "secret"


def test_game_arguments_state_version(context: Context):

    vanilla = _launchable(context, "linux", arguments=MODERN_ARGUMENTS)
    vanilla.state.insert("net.minecraft", GameComponent("1.16.4-custom"))
    args = vanilla.game_arguments("Watson17")
    assert args[args.index("--version") + 1] == "1.16.4-custom"


def test_game_arguments_errors(context: Context):

    vanilla = _launchable(context, "linux", game_args=None)
    with pytest.raises(ArgumentsNotFoundError) as exc_info:
        vanilla.game_arguments("Watson17")
    assert exc_info.value.group == "game"

    vanilla = _launchable(context, "linux")
    del vanilla.state.components["net.minecraft"]
    with pytest.raises(ComponentNotFoundError) as exc_info:
        vanilla.game_arguments("Watson17")
    assert exc_info.value.name == "net.minecraft"


def test_jvm_arguments(context: Context):

    vanilla = _launchable(context, "linux", arguments=MODERN_ARGUMENTS)
    classpath = vanilla.classpath()

    assert vanilla.jvm_arguments(classpath) == [
        f"-Djava.library.path={context.get('natives')}",
        "-Dminecraft.launcher.brand=instancemc",
        "-Dminecraft.launcher.version=1.0.0",
        "-cp",
        classpath,
        "-Xmx2G",
        "-XX:+UseG1GC",
    ]

    vanilla = _launchable(context, "windows", arguments=MODERN_ARGUMENTS)
    assert vanilla.jvm_arguments("cp")[0] == "-XX:HeapDumpPath=dump.hprof"


def test_jvm_arguments_fallback(context: Context):

    vanilla = _launchable(context, "linux")
    vanilla.state.insert("java", JavaComponent("java"))

    assert vanilla.jvm_arguments("foo.jar") == [
        f"-Djava.library.path={context.get('natives')}",
        "-cp",
        "foo.jar",
    ]


def test_jvm_arguments_no_java(context: Context):

    vanilla = _launchable(context, "linux", arguments=MODERN_ARGUMENTS)
    del vanilla.state.components["java"]

    with pytest.raises(ComponentNotFoundError) as exc_info:
        vanilla.jvm_arguments(vanilla.classpath())
    assert exc_info.value.name == "java"


def test_build_command(context: Context):

    vanilla = _launchable(context, "linux", arguments=MODERN_ARGUMENTS)
    command = build_command(vanilla, "Watson17")

    assert command[0] == "/opt/java/bin/java"
    assert command == [
        "/opt/java/bin/java",
        *vanilla.jvm_arguments(vanilla.classpath()),
        "net.minecraft.client.main.Main",
        *vanilla.game_arguments("Watson17"),
    ]


def test_from_state(context: Context):

    catalog = FakeCatalog({"1.16.4": make_manifest("1.16.4")})

    with pytest.raises(ComponentNotFoundError):
        Vanilla.from_state(context, catalog=catalog)

    state = State()
    Vanilla(context, "1.16.4", catalog=catalog).initialize_state(state)
    state.write(context.get("instance"))

    vanilla = Vanilla.from_state(context, catalog=catalog)
    assert vanilla.version == "1.16.4"
    assert vanilla.state.components == state.components


def test_search_versions():

    catalog = FakeCatalog({
        "1.16.3": make_manifest("1.16.3"),
        "20w48a": make_manifest("20w48a", version_type="snapshot"),
        "1.16.4": make_manifest("1.16.4"),
    })

    assert [v.id for v in search_versions(catalog)] == ["1.16.3", "20w48a", "1.16.4"]
    assert [v.id for v in search_versions(catalog, "1.16")] == ["1.16.3", "1.16.4"]
    assert [v.id for v in search_versions(catalog, include_snapshots=False)] == ["1.16.3", "1.16.4"]
    assert [v.id for v in search_versions(catalog, "release")] == ["1.16.4"]
