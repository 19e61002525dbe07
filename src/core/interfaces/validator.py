"""Response validator contract."""

from __future__ import annotations

from typing import Protocol, TypeVar, runtime_checkable

T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class Validator(Protocol[T_co]):
    """Maps an untyped response to `T_co` or raises.

    Contract violations should raise `IpcCallError` with code
    `IPC_SCHEMA_MISMATCH`; anything else raised is normalized as `Unknown`.
    """

    def __call__(self, value: object) -> T_co: ...
