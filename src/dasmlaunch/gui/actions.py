"""User actions recorded in session logs."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

# Actions a window can apply and a session can replay
ACTION_KINDS = ("goto", "back", "rename", "comment", "disassemble", "view")

VIEWS = ("listing", "graph", "decompile")

# Argument types of each action kind
_ARG_TYPES = {
    "goto": (int,),
    "back": (),
    "rename": (int, str),
    "comment": (int, str),
    "disassemble": (int,),
    "view": (str,),
}


@dataclass(frozen=True)
class Action:
    """One user action.

    Attributes:
        kind: One of ACTION_KINDS
        args: JSON-compatible arguments (addresses as ints)
    """
    kind: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if self.kind not in ACTION_KINDS:
            raise ValueError(f"Unknown action: {self.kind}")
        expected = _ARG_TYPES[self.kind]
        if len(self.args) != len(expected):
            raise ValueError(
                f"{self.kind} takes {len(expected)} arguments, got {len(self.args)}"
            )
        for arg, arg_type in zip(self.args, expected):
            # bool is an int subclass but never an address
            if not isinstance(arg, arg_type) or isinstance(arg, bool):
                raise ValueError(f"{self.kind}: bad argument {arg!r}")
        if self.kind == "view" and self.args[0] not in VIEWS:
            raise ValueError(f"Unknown view: {self.args[0]}")

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "args": list(self.args)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        return cls(kind=data["kind"], args=tuple(data.get("args", ())))

    # Constructors for the common actions

    @classmethod
    def goto(cls, address: int) -> "Action":
        return cls("goto", (address,))

    @classmethod
    def back(cls) -> "Action":
        return cls("back")

    @classmethod
    def rename(cls, address: int, name: str) -> "Action":
        return cls("rename", (address, name))

    @classmethod
    def comment(cls, address: int, text: str) -> "Action":
        return cls("comment", (address, text))

    @classmethod
    def disassemble(cls, address: int) -> "Action":
        return cls("disassemble", (address,))

    @classmethod
    def view(cls, name: str) -> "Action":
        return cls("view", (name,))
