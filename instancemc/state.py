"""Installation state of an instance. The state is the only data persisted by the
download sequence besides downloaded files, it records which components (the JVM and
the game itself) have been installed and is read back when building the launch
command.
"""

from json import JSONDecodeError
from pathlib import Path
import json

from typing import Dict, Optional, Any


STATE_FILE_NAME = "state.json"


class Component:
    """Base class for a component record stored in the state. Subclasses define the
    `type` tag used when serializing the record.
    """

    type: str

    def to_json(self) -> Dict[str, Any]:
        raise NotImplementedError


class JavaComponent(Component):
    """The runtime component, giving the JVM executable to use and optional extra
    arguments given by the user, separated by whitespaces.
    """

    type = "java"

    __slots__ = "path", "arguments"

    def __init__(self, path: str, arguments: Optional[str] = None) -> None:
        self.path = path
        self.arguments = arguments

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type, "path": self.path, "arguments": self.arguments}

    def __eq__(self, other) -> bool:
        return isinstance(other, JavaComponent) and \
            (self.path, self.arguments) == (other.path, other.arguments)

    def __repr__(self) -> str:
        return f"<JavaComponent {self.path} {self.arguments!r}>"


class GameComponent(Component):
    """The game component, giving the identifier of the installed version.
    """

    type = "game"

    __slots__ = "version",

    def __init__(self, version: str) -> None:
        self.version = version

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type, "version": self.version}

    def __eq__(self, other) -> bool:
        return isinstance(other, GameComponent) and self.version == other.version

    def __repr__(self) -> str:
        return f"<GameComponent {self.version}>"


class State:
    """Mapping of component names to their records. There is no partial update, the
    download sequence rebuilds every record and overwrites the whole file.
    """

    def __init__(self) -> None:
        self.components: Dict[str, Component] = {}

    def insert(self, name: str, component: Component) -> None:
        """Insert or replace the component with the given name.
        """
        self.components[name] = component

    def get(self, name: str) -> Component:
        """Get a component given its name.

        :raises ComponentNotFoundError: If the component is absent.
        """
        try:
            return self.components[name]
        except KeyError:
            raise ComponentNotFoundError(name) from None

    def get_java(self, name: str = "java") -> JavaComponent:
        """Get a runtime component, raising `ComponentNotFoundError` if the component is
        missing or is not a runtime record.
        """
        component = self.get(name)
        if not isinstance(component, JavaComponent):
            raise ComponentNotFoundError(name)
        return component

    def get_game(self, name: str) -> GameComponent:
        """Get a game component, raising `ComponentNotFoundError` if the component is
        missing or is not a game record.
        """
        component = self.get(name)
        if not isinstance(component, GameComponent):
            raise ComponentNotFoundError(name)
        return component

    def write(self, instance_dir: Path) -> None:
        """Write the full state to the state file of the given instance directory.
        """
        instance_dir.mkdir(parents=True, exist_ok=True)
        data = {name: component.to_json() for name, component in self.components.items()}
        with (instance_dir / STATE_FILE_NAME).open("wt") as fp:
            json.dump({"components": data}, fp, indent=2)

    @classmethod
    def load(cls, instance_dir: Path) -> "State":
        """Load the state of the given instance directory. If the instance has no state
        file, an empty state is returned.

        :raises StateError: If the state file cannot be decoded.
        """

        state = cls()
        state_file = instance_dir / STATE_FILE_NAME

        try:
            with state_file.open("rt") as fp:
                data = json.load(fp)
        except FileNotFoundError:
            return state
        except (OSError, JSONDecodeError) as error:
            raise StateError(f"failed to read state file {state_file}: {error}")

        if not isinstance(data, dict) or not isinstance(data.get("components"), dict):
            raise StateError("state: /components must be an object")

        for name, raw in data["components"].items():
            state.insert(name, parse_component(raw, f"state: /components/{name}"))

        return state

    def __repr__(self) -> str:
        return f"<State {self.components!r}>"


def parse_component(raw: Any, path: str) -> Component:
    """Parse a component record from its JSON representation.
    """

    if not isinstance(raw, dict):
        raise StateError(f"{path} must be an object")

    typ = raw.get("type")
    if typ == JavaComponent.type:
        comp_path = raw.get("path")
        if not isinstance(comp_path, str):
            raise StateError(f"{path}/path must be a string")
        arguments = raw.get("arguments")
        if arguments is not None and not isinstance(arguments, str):
            raise StateError(f"{path}/arguments must be a string")
        return JavaComponent(comp_path, arguments)
    elif typ == GameComponent.type:
        version = raw.get("version")
        if not isinstance(version, str):
            raise StateError(f"{path}/version must be a string")
        return GameComponent(version)
    else:
        raise StateError(f"{path}/type must be 'java' or 'game'")


class StateError(Exception):
    """Raised when the state cannot be read or doesn't hold required components.
    """

class ComponentNotFoundError(StateError):
    """Raised when a required component is missing from the state. The name of the
    missing component is given.
    """
    def __init__(self, name: str) -> None:
        self.name = name
    
    def __str__(self) -> str:
        return repr(self.name)
