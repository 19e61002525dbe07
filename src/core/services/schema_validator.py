"""Contract enforcement for IPC responses.

A mismatch means client/backend version drift, never a transient fault: the
resulting `IPC_SCHEMA_MISMATCH` error is not retried.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from core.domain.contracts import DEFAULT_CONTRACTS, ContractDescriptor
from core.domain.errors import ErrorCode, IpcCallError

T = TypeVar("T")


class ContractRegistryError(ValueError):
    """Invalid registry operation (duplicate command, ...)."""


def _issues_of(exc: ValidationError) -> list[dict[str, Any]]:
    issues: list[dict[str, Any]] = []
    for err in exc.errors(include_url=False, include_input=False):
        path = ".".join(str(part) for part in err.get("loc", ()))
        issues.append(
            {
                "path": path or "<root>",
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            }
        )
    return issues


class ContractValidator(Generic[T]):
    """`Validator[T]` backed by a contract descriptor."""

    def __init__(self, descriptor: ContractDescriptor) -> None:
        self.descriptor = descriptor
        self._adapter: TypeAdapter[T] = TypeAdapter(descriptor.schema)

    @property
    def command(self) -> str:
        return self.descriptor.command

    def __call__(self, value: object) -> T:
        try:
            return self._adapter.validate_python(value, strict=True)
        except ValidationError as exc:
            raise IpcCallError.of(
                ErrorCode.SCHEMA_MISMATCH,
                f"IPC response of '{self.command}' does not match its contract",
                {
                    "command": self.command,
                    "contract_version": self.descriptor.version,
                    "issues": _issues_of(exc),
                },
                command=self.command,
            ) from exc

    def dump(self, value: T) -> Any:
        """Plain (JSON-compatible) form of a validated value, extras included."""

        return self._adapter.dump_python(value, mode="json")

    def __repr__(self) -> str:
        return f"ContractValidator(command={self.command!r}, version={self.descriptor.version!r})"


def contract_validator(schema: Any, command: str, *, version: str = "1") -> ContractValidator[Any]:
    """Ad-hoc validator for a single call site."""

    return ContractValidator(ContractDescriptor(command=command, schema=schema, version=version))


class ContractRegistry:
    """Contracts keyed by command name. Registered once, never replaced."""

    def __init__(self, descriptors: Iterable[ContractDescriptor] = ()) -> None:
        self._validators: dict[str, ContractValidator[Any]] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ContractDescriptor) -> ContractValidator[Any]:
        if descriptor.command in self._validators:
            raise ContractRegistryError(f"contract already registered: {descriptor.command}")
        validator: ContractValidator[Any] = ContractValidator(descriptor)
        self._validators[descriptor.command] = validator
        return validator

    def get(self, command: str) -> ContractValidator[Any] | None:
        return self._validators.get(command)

    def __contains__(self, command: object) -> bool:
        return command in self._validators

    def __iter__(self) -> Iterator[ContractDescriptor]:
        for command in sorted(self._validators):
            yield self._validators[command].descriptor

    def __len__(self) -> int:
        return len(self._validators)


def build_default_registry() -> ContractRegistry:
    return ContractRegistry(DEFAULT_CONTRACTS)
