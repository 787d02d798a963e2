from argparse import ArgumentParser, HelpFormatter
from pathlib import Path

from ..standard import Context
from ..manifest import VersionManifest
from ..download import DEFAULT_THREADS_COUNT

from .output import Output
from .lang import get as _

from typing import Optional, Type, List


# The following classes are only used for type checking and represent a typed namespace
# as produced by the arguments registered to the argument parser.

class RootNs:
    main_dir: Optional[Path]
    instance: str
    timeout: Optional[float]
    out_kind: str
    verbose: int
    # Initialized by main function after argument parsing.
    out: Output
    context: Context
    version_manifest: VersionManifest

class SearchNs(RootNs):
    kind: str
    snapshots: bool
    input: Optional[str]

class DownloadNs(RootNs):
    jvm: Optional[str]
    jvm_args: Optional[str]
    threads: int
    version: str

class LaunchNs(RootNs):
    username: str

class AccountAddNs(RootNs):
    username: str
    uuid: Optional[str]
    token: str

class AccountRemoveNs(RootNs):
    username: str


def register_arguments() -> ArgumentParser:
    parser = ArgumentParser(allow_abbrev=False, prog="instancemc", description=_("args"))
    parser.add_argument("--main-dir", help=_("args.main_dir"), type=Path)
    parser.add_argument("--instance", help=_("args.instance"), default="default")
    parser.add_argument("--timeout", help=_("args.timeout"), type=float)
    parser.add_argument("--output", help=_("args.output"), dest="out_kind", choices=get_outputs(), default="human-color")
    parser.add_argument("-v", dest="verbose", help=_("args.verbose"), action="count", default=0)
    register_subcommands(parser.add_subparsers(title="subcommands", dest="subcommand"))
    return parser


def register_subcommands(subparsers):
    register_search_arguments(subparsers.add_parser("search", help=_("args.search")))
    register_download_arguments(subparsers.add_parser("download", help=_("args.download")))
    register_launch_arguments(subparsers.add_parser("launch", help=_("args.launch")))
    register_account_arguments(subparsers.add_parser("account", help=_("args.account")))


def register_search_arguments(parser: ArgumentParser):
    parser.add_argument("-k", "--kind", help=_("args.search.kind"), default="mojang", choices=get_search_kinds())
    parser.add_argument("-s", "--snapshots", help=_("args.search.snapshots"), action="store_true")
    parser.add_argument("input", nargs="?")


def register_download_arguments(parser: ArgumentParser):
    parser.formatter_class = new_help_formatter_class(40)
    parser.add_argument("--jvm", help=_("args.download.jvm"))
    parser.add_argument("--jvm-args", help=_("args.download.jvm_args"), metavar="ARGS")
    parser.add_argument("--threads", help=_("args.download.threads"), type=int, default=DEFAULT_THREADS_COUNT, metavar="COUNT")
    parser.add_argument("version", nargs="?", default="release", help=_("args.download.version"))


def register_launch_arguments(parser: ArgumentParser):
    parser.add_argument("-u", "--username", help=_("args.launch.username"), metavar="NAME", default="player")


def register_account_arguments(parser: ArgumentParser):
    subparsers = parser.add_subparsers(title="subcommands", dest="account_subcommand")
    subparsers.required = True
    subparsers.add_parser("list", help=_("args.account.list"))
    add_parser = subparsers.add_parser("add", help=_("args.account.add"))
    add_parser.add_argument("-i", "--uuid", help=_("args.account.add.uuid"))
    add_parser.add_argument("-t", "--token", help=_("args.account.add.token"), default="")
    add_parser.add_argument("username")
    remove_parser = subparsers.add_parser("remove", help=_("args.account.remove"))
    remove_parser.add_argument("username")


def new_help_formatter_class(max_help_position: int) -> Type[HelpFormatter]:

    class CustomHelpFormatter(HelpFormatter):
        def __init__(self, prog):
            super().__init__(prog, max_help_position=max_help_position)

    return CustomHelpFormatter


def get_outputs() -> List[str]:
    return ["human-color", "human", "machine"]


def get_search_kinds() -> List[str]:
    return ["mojang", "local"]
