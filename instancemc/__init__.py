"""Main module for the instancemc API.

The API is split in a few modules: `standard` defines the installation context and the
download/launch sequences, `vanilla` implements them for the vanilla game, `download`
is the concurrent fetch engine and `state` the persisted record of an instance's
installed components.
"""

LAUNCHER_NAME = "instancemc"
LAUNCHER_VERSION = "1.0.0"
