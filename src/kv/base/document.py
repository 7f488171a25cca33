from dataclasses import dataclass, fields, is_dataclass
from typing import Any, Optional
import copy


@dataclass
class Document:
    key: str
    value: Any
    cas: int

    def content(self) -> Any:
        # callers get their own copy; staged values never alias store state
        return copy.deepcopy(self.value)

    def content_as(self, cls):
        """
        Decode a JSON object into ``cls``.

        Dataclasses are built from their declared fields; any other class
        receives the object as keyword arguments.
        """
        data = self.content()
        if not isinstance(data, dict):
            raise TypeError(f"document {self.key} does not hold a JSON object")
        if is_dataclass(cls):
            names = {f.name for f in fields(cls)}
            return cls(**{k: v for k, v in data.items() if k in names})
        return cls(**data)


def to_content(obj: Any) -> Optional[Any]:
    """Encode a dataclass (or plain JSON value) into a storable document body."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in fields(obj)}
    return copy.deepcopy(obj)
