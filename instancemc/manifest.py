"""Parsing of the version metadata (build manifest) and assets index, and access to the
official version catalog. The catalog is used to list available versions and to find
the URL of their build manifest.
"""

from json import JSONDecodeError
from pathlib import Path
import platform
import hashlib
import json
import re

from .http import http_request, HttpError
from .util import normalize_os_name

from typing import Optional, Dict, List, Any, Callable


VERSION_MANIFEST_URL = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"

# Name of the processor's architecture has used in metadata rules.
minecraft_arch = {
    "i386": "x86",
    "i686": "x86",
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv7l": "arm32",
    "armv6l": "arm32",
}.get(platform.machine().lower())


class VersionDescriptor:
    """A version entry of the catalog, giving the URL of its build manifest.
    """

    __slots__ = "id", "url", "type", "sha1"

    def __init__(self, id: str, url: str, type: str = "release", sha1: Optional[str] = None) -> None:
        self.id = id
        self.url = url
        self.type = type
        self.sha1 = sha1

    def __repr__(self) -> str:
        return f"<VersionDescriptor {self.id}>"


class Artifact:
    """A downloadable file described in metadata.
    """

    __slots__ = "path", "url", "sha1", "size"

    def __init__(self, path: Optional[str], url: str, sha1: Optional[str] = None, size: Optional[int] = None) -> None:
        self.path = path
        self.url = url
        self.sha1 = sha1
        self.size = size

    def __repr__(self) -> str:
        return f"<Artifact {self.url}>"


class Rule:
    """A library rule, allowing or disallowing the library on an OS. A rule without OS
    name has no effect on libraries.
    """

    __slots__ = "action", "os_name"

    def __init__(self, action: str, os_name: Optional[str] = None) -> None:
        self.action = action
        self.os_name = os_name


class LibraryEntry:
    """A library of the build manifest, with its optional class path artifact and its
    optional natives classifiers.
    """

    __slots__ = "name", "artifact", "natives", "classifiers", "rules"

    def __init__(self, name: str, *,
        artifact: Optional[Artifact] = None,
        natives: Optional[Dict[str, str]] = None,
        classifiers: Optional[Dict[str, Artifact]] = None,
        rules: Optional[List[Rule]] = None
    ) -> None:
        self.name = name
        self.artifact = artifact
        self.natives = natives
        self.classifiers = classifiers
        self.rules = rules

    def is_allowed(self, os_name: Optional[str]) -> bool:
        """Return true if this library should be used on the given OS. The library is
        excluded if any rule allows it only for another OS, or disallows it for this OS.
        A library without rules is always allowed.
        """
        for rule in self.rules or ():
            rule_os = normalize_os_name(rule.os_name)
            if rule_os is None:
                continue
            if rule.action == "allow" and rule_os != os_name:
                return False
            if rule.action == "disallow" and rule_os == os_name:
                return False
        return True

    def native_classifier(self, os_name: Optional[str], arch_bits: Optional[int]) -> Optional[str]:
        """Return the natives classifier of this library for the given OS, none if this
        library has no natives for it.
        """
        if self.natives is None or os_name is None:
            return None
        classifier = None
        for natives_os, natives_classifier in self.natives.items():
            if normalize_os_name(natives_os) == os_name:
                classifier = natives_classifier
                break
        if classifier is not None and arch_bits is not None:
            classifier = classifier.replace("${arch}", str(arch_bits))
        return classifier

    def __repr__(self) -> str:
        return f"<LibraryEntry {self.name}>"


class Argument:
    """An argument template, possibly expanding to multiple values and conditioned by
    rules (raw metadata rules, evaluated with `interpret_rule`).
    """

    __slots__ = "values", "rules"

    def __init__(self, values: List[str], rules: Optional[list] = None) -> None:
        self.values = values
        self.rules = rules


class AssetIndexRef:
    """Reference to the assets index of a version.
    """

    __slots__ = "id", "url", "sha1", "size"

    def __init__(self, id: str, url: str, sha1: Optional[str] = None, size: Optional[int] = None) -> None:
        self.id = id
        self.url = url
        self.sha1 = sha1
        self.size = size

    def is_legacy(self) -> bool:
        """Return true if this index uses the legacy assets layout, where assets are
        stored by their logical path in the instance's resources directory.
        """
        return self.id in ("pre-1.6", "legacy")


class AssetObject:
    """An object of an assets index.
    """

    __slots__ = "hash", "size"

    def __init__(self, hash: str, size: int) -> None:
        self.hash = hash
        self.size = size

    def __repr__(self) -> str:
        return f"<AssetObject {self.hash}>"


class AssetManifest:
    """A parsed assets index, mapping logical paths to objects.
    """

    def __init__(self, objects: Dict[str, AssetObject]) -> None:
        self.objects = objects

    @classmethod
    def parse(cls, data: Any) -> "AssetManifest":

        if not isinstance(data, dict):
            raise ValueError("assets index: / must be an object")

        raw_objects = data.get("objects")
        if not isinstance(raw_objects, dict):
            raise ValueError("assets index: /objects must be an object")

        objects = {}
        for asset_id, asset_obj in raw_objects.items():

            if not isinstance(asset_obj, dict):
                raise ValueError(f"assets index: /objects/{asset_id} must be an object")

            asset_hash = asset_obj.get("hash")
            if not isinstance(asset_hash, str) or len(asset_hash) < 2:
                raise ValueError(f"assets index: /objects/{asset_id}/hash must be a string")

            asset_size = asset_obj.get("size")
            if not isinstance(asset_size, int):
                raise ValueError(f"assets index: /objects/{asset_id}/size must be an integer")

            objects[asset_id] = AssetObject(asset_hash, asset_size)

        return cls(objects)


class BuildManifest:
    """The build manifest of a version, also called version metadata. This is parsed
    from the official JSON format.
    """

    def __init__(self,
        id: str,
        main_class: str,
        type: str,
        client: Artifact,
        asset_index: AssetIndexRef,
        libraries: List[LibraryEntry],
        arguments: Dict[str, List[Argument]]
    ) -> None:
        self.id = id
        self.main_class = main_class
        self.type = type
        self.client = client
        self.asset_index = asset_index
        self.libraries = libraries
        self.arguments = arguments

    def templates(self, group: str, os_name: Optional[str],
        features: Optional[Dict[str, bool]] = None
    ) -> Optional[List[str]]:
        """Return the argument templates of the given group ("game" or "jvm"), only
        keeping arguments whose rules match the given OS and features. None is returned
        if the group is absent.
        """
        arguments = self.arguments.get(group)
        if arguments is None:
            return None
        features = features or {}
        templates = []
        for i, arg in enumerate(arguments):
            if arg.rules is not None:
                if not interpret_rule(arg.rules, os_name, features, f"metadata: /arguments/{group}/{i}/rules"):
                    continue
            templates.extend(arg.values)
        return templates

    @classmethod
    def parse(cls, data: Any) -> "BuildManifest":

        if not isinstance(data, dict):
            raise ValueError("metadata: / must be an object")

        id = data.get("id")
        if not isinstance(id, str):
            raise ValueError("metadata: /id must be a string")

        main_class = data.get("mainClass")
        if not isinstance(main_class, str):
            raise ValueError("metadata: /mainClass must be a string")

        typ = data.get("type", "release")
        if not isinstance(typ, str):
            raise ValueError("metadata: /type must be a string")

        downloads = data.get("downloads")
        if not isinstance(downloads, dict):
            raise ValueError("metadata: /downloads must be an object")
        client = parse_artifact(downloads.get("client"), "metadata: /downloads/client")

        asset_index_info = data.get("assetIndex")
        if not isinstance(asset_index_info, dict):
            raise ValueError("metadata: /assetIndex must be an object")
        asset_index_id = asset_index_info.get("id")
        if not isinstance(asset_index_id, str):
            raise ValueError("metadata: /assetIndex/id must be a string")
        asset_index_dl = parse_artifact(asset_index_info, "metadata: /assetIndex")
        asset_index = AssetIndexRef(asset_index_id, asset_index_dl.url, asset_index_dl.sha1, asset_index_dl.size)

        raw_libraries = data.get("libraries", [])
        if not isinstance(raw_libraries, list):
            raise ValueError("metadata: /libraries must be a list")
        libraries = [parse_library(raw, f"metadata: /libraries/{i}") for i, raw in enumerate(raw_libraries)]

        arguments: Dict[str, List[Argument]] = {}
        modern_args = data.get("arguments")
        if modern_args is not None:
            if not isinstance(modern_args, dict):
                raise ValueError("metadata: /arguments must be an object")
            for group, raw_args in modern_args.items():
                arguments[group] = parse_arguments(raw_args, f"metadata: /arguments/{group}")
        else:
            # Legacy versions only define game arguments, in a single string.
            legacy_game_args = data.get("minecraftArguments")
            if legacy_game_args is not None:
                if not isinstance(legacy_game_args, str):
                    raise ValueError("metadata: /minecraftArguments must be a string")
                arguments["game"] = [Argument([arg]) for arg in legacy_game_args.split(" ") if len(arg)]

        return cls(id, main_class, typ, client, asset_index, libraries, arguments)

    def __repr__(self) -> str:
        return f"<BuildManifest {self.id}>"


def parse_artifact(value: Any, path: str, *, require_path: bool = False) -> Artifact:
    """Common function to parse a download artifact from a metadata JSON file.
    """

    if not isinstance(value, dict):
        raise ValueError(f"{path} must be an object")

    url = value.get("url")
    if not isinstance(url, str):
        raise ValueError(f"{path}/url must be a string")

    size = value.get("size")
    if size is not None and not isinstance(size, int):
        raise ValueError(f"{path}/size must be an integer")

    sha1 = value.get("sha1")
    if sha1 is not None and not isinstance(sha1, str):
        raise ValueError(f"{path}/sha1 must be a string")

    art_path = value.get("path")
    if (require_path or art_path is not None) and not isinstance(art_path, str):
        raise ValueError(f"{path}/path must be a string")

    return Artifact(art_path, url, sha1, size)


def parse_library(value: Any, path: str) -> LibraryEntry:
    """Parse a library entry of the build manifest.
    """

    if not isinstance(value, dict):
        raise ValueError(f"{path} must be an object")

    name = value.get("name")
    if not isinstance(name, str):
        raise ValueError(f"{path}/name must be a string")

    rules = None
    raw_rules = value.get("rules")
    if raw_rules is not None:
        if not isinstance(raw_rules, list):
            raise ValueError(f"{path}/rules must be a list")
        rules = []
        for i, raw_rule in enumerate(raw_rules):
            if not isinstance(raw_rule, dict):
                raise ValueError(f"{path}/rules/{i} must be an object")
            action = raw_rule.get("action")
            if action not in ("allow", "disallow"):
                raise ValueError(f"{path}/rules/{i}/action must be 'allow' and 'disallow'")
            rule_os = raw_rule.get("os", {})
            if not isinstance(rule_os, dict):
                raise ValueError(f"{path}/rules/{i}/os must be an object")
            os_name = rule_os.get("name")
            if os_name is not None and not isinstance(os_name, str):
                raise ValueError(f"{path}/rules/{i}/os/name must be a string")
            rules.append(Rule(action, os_name))

    natives = value.get("natives")
    if natives is not None:
        if not isinstance(natives, dict) or not all(isinstance(v, str) for v in natives.values()):
            raise ValueError(f"{path}/natives must be an object of strings")

    artifact = None
    classifiers = None
    downloads = value.get("downloads")
    if downloads is not None:

        if not isinstance(downloads, dict):
            raise ValueError(f"{path}/downloads must be an object")

        raw_artifact = downloads.get("artifact")
        if raw_artifact is not None:
            artifact = parse_artifact(raw_artifact, f"{path}/downloads/artifact", require_path=True)

        raw_classifiers = downloads.get("classifiers")
        if raw_classifiers is not None:
            if not isinstance(raw_classifiers, dict):
                raise ValueError(f"{path}/downloads/classifiers must be an object")
            classifiers = {
                classifier: parse_artifact(raw, f"{path}/downloads/classifiers/{classifier}")
                for classifier, raw in raw_classifiers.items()
            }

    return LibraryEntry(name, artifact=artifact, natives=natives, classifiers=classifiers, rules=rules)


def parse_arguments(value: Any, path: str) -> List[Argument]:
    """Parse a list of arguments, each argument being a string or an object with a
    value (string or list of strings) and optional rules.
    """

    if not isinstance(value, list):
        raise ValueError(f"{path} must be a list")

    arguments = []
    for i, arg in enumerate(value):
        if isinstance(arg, str):
            arguments.append(Argument([arg]))
        elif isinstance(arg, dict):
            rules = arg.get("rules")
            if rules is not None and not isinstance(rules, list):
                raise ValueError(f"{path}/{i}/rules must be a list")
            arg_value = arg.get("value")
            if isinstance(arg_value, str):
                arguments.append(Argument([arg_value], rules))
            elif isinstance(arg_value, list) and all(isinstance(v, str) for v in arg_value):
                arguments.append(Argument(arg_value, rules))
            else:
                raise ValueError(f"{path}/{i}/value must be a list or a string")
        else:
            raise ValueError(f"{path}/{i} must be an object or a string")

    return arguments


def interpret_rule(rules: list, os_name: Optional[str], features: Dict[str, bool], path: str) -> bool:
    """Common function to interpret argument rules and determine if the condition is
    met on the given OS and with the given features.
    """

    allowed = False
    for i, rule in enumerate(rules):

        if not isinstance(rule, dict):
            raise ValueError(f"{path}/{i} must be an object")

        rule_os = rule.get("os")
        if rule_os is not None and not interpret_rule_os(rule_os, os_name, f"{path}/{i}/os"):
            continue

        rule_features = rule.get("features")
        if rule_features is not None:

            if not isinstance(rule_features, dict):
                raise ValueError(f"{path}/{i}/features must be an object")

            if any(features.get(name, False) != expected for name, expected in rule_features.items()):
                continue

        action = rule.get("action")
        if action == "disallow":
            return False    # Early return because of disallow.
        elif action == "allow":
            allowed = True
        else:
            raise ValueError(f"{path}/{i}/action must be 'allow' and 'disallow'")

    return allowed


def interpret_rule_os(rule_os: Any, os_name: Optional[str], path: str) -> bool:
    """Common function to interpret a rule constraint on the running OS.
    """

    if not isinstance(rule_os, dict):
        raise ValueError(f"{path} must be an object")

    rule_os_name = rule_os.get("name")
    if rule_os_name is None or normalize_os_name(rule_os_name) == os_name:
        os_arch = rule_os.get("arch")
        if os_arch is None or os_arch == minecraft_arch:
            os_version = rule_os.get("version")
            if os_version is None or re.search(os_version, platform.version()) is not None:
                return True
    return False


def decode_json(data: bytes, source: str) -> Any:
    """Decode JSON data, raising `ManifestDecodeError` with the given source on error.
    """
    try:
        return json.loads(data)
    except (JSONDecodeError, UnicodeDecodeError) as error:
        raise ManifestDecodeError(source, str(error))


def cache_or_fetch(path: Path, url: str, fetch: Callable[[str], bytes]) -> bytes:
    """Read-through cache for metadata files. If the cache file exists its raw content
    is returned as-is, without being validated. Otherwise the data is fetched from the
    given URL and written to the cache file before being returned.

    Writing the cache file is required to succeed, OS errors are propagated.
    """
    try:
        return path.read_bytes()
    except FileNotFoundError:
        pass
    data = fetch(url)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return data


class VersionManifest:
    """The official version catalog. Providing officially available versions with
    optional cache file.
    """

    def __init__(self, cache_file: Optional[Path] = None) -> None:
        self.data: Optional[dict] = None
        self.cache_file = cache_file

    def _ensure_data(self) -> dict:
        """Internal method that ensure that the manifest data is up-to-date.

        :return: The full data of the manifest.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """

        if self.data is None:

            headers = {}
            cache_data = None

            # If a cache file should be used, try opening it and read the last modified
            # time that will be used for requesting the manifest, only if needed.
            if self.cache_file is not None:
                try:
                    with self.cache_file.open("rt") as cache_fp:
                        cache_data = json.load(cache_fp)
                    if "last_modified" in cache_data:
                        headers["If-Modified-Since"] = cache_data["last_modified"]
                except (OSError, JSONDecodeError):
                    pass

            try:

                res = http_request("GET", VERSION_MANIFEST_URL,
                    headers=headers,
                    accept="application/json")

                self.data = res.json()

                if "Last-Modified" in res.headers:
                    self.data["last_modified"] = res.headers["Last-Modified"]

                if self.cache_file is not None:
                    self.cache_file.parent.mkdir(parents=True, exist_ok=True)
                    with self.cache_file.open("wt") as cache_fp:
                        json.dump(self.data, cache_fp)

            except HttpError as error:
                # Checking for 0, which means network error, in such case we want to
                # ignore the network error and just use the cached data.
                if error.res.status in (0, 304) and cache_data is not None:
                    self.data = cache_data
                else:
                    raise

        return self.data

    def list_versions(self, include_snapshots: bool = True) -> List[VersionDescriptor]:
        """List all versions of the catalog, optionally excluding versions that are not
        releases.
        """
        versions = []
        for version_data in self._ensure_data()["versions"]:
            typ = version_data.get("type", "release")
            if include_snapshots or typ == "release":
                versions.append(VersionDescriptor(version_data["id"], version_data["url"], typ, version_data.get("sha1")))
        return versions

    def latest(self, include_snapshots: bool = False) -> VersionDescriptor:
        """Return the latest release, or the latest snapshot if snapshots are included.

        :raises ValueError: If the catalog's latest pointer is not listed.
        """
        latest_id = self._ensure_data()["latest"]["snapshot" if include_snapshots else "release"]
        for version in self.list_versions(True):
            if version.id == latest_id:
                return version
        raise ValueError(f"version manifest: latest version {latest_id} is not listed")

    def fetch_manifest(self, url: str) -> bytes:
        """Fetch the raw data of a build manifest.
        """
        return http_request("GET", url, accept="application/json").data

    def fetch_and_save(self, url: str, dst: Path, *, sha1: Optional[str] = None) -> bytes:
        """Fetch raw data and save it to the given file, overwriting it. If a SHA-1 is
        given, the data is checked against it before being saved.

        :raises ManifestDecodeError: If the data doesn't match the expected digest.
        """
        data = http_request("GET", url, accept="application/json").data
        if sha1 is not None and hashlib.sha1(data).hexdigest() != sha1:
            raise ManifestDecodeError(url, "invalid sha1")
        dst.parent.mkdir(parents=True, exist_ok=True)
        dst.write_bytes(data)
        return data


class ManifestDecodeError(Exception):
    """Raised when a build manifest or assets index cannot be decoded or doesn't match
    its expected digest. The source (file or URL) and reason are given.
    """
    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.source}: {self.reason}"
