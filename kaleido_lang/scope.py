from typing import Any, Dict

from .exceptions import UnknownNameError

_UNBOUND = object()


class NamedValueScope:
    """Variable name -> SSA value bindings for the function being lowered."""

    def __init__(self):
        self.values: Dict[str, Any] = {}

    def clear(self) -> None:
        self.values.clear()

    def bind(self, name: str, value: Any) -> None:
        self.values[name] = value

    def lookup(self, name: str) -> Any:
        if name in self.values:
            return self.values[name]
        raise UnknownNameError(f"Unknown variable name '{name}'")

    def shadow(self, name: str, value: Any) -> Any:
        """Bind ``name`` and return whatever it was bound to before."""
        previous = self.values.get(name, _UNBOUND)
        self.values[name] = value
        return previous

    def restore(self, name: str, previous: Any) -> None:
        if previous is _UNBOUND:
            self.values.pop(name, None)
        else:
            self.values[name] = previous

    def __contains__(self, name: str) -> bool:
        return name in self.values
