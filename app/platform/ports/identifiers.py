from typing import Protocol, runtime_checkable

@runtime_checkable
class IdentifierPort(Protocol):
    def new_id(self) -> str: ...
