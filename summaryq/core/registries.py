from typing import Any, Awaitable, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def unregister(self, name: str) -> None:
        if self._frozen:
            raise RuntimeError(
                f"Cannot unregister '{name}' from {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations.pop(name, None)

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Executor Registry - one summarization executor per content kind
class SummaryExecutor(Protocol):
    """Protocol for summary executors."""

    def __call__(self, job: Any) -> Awaitable[Any]:
        """
        Produce a summary for a claimed job.

        Returns the summary text (or an object exposing ``summary_text``).
        Raises on failure; the worker classifies the exception.
        """
        ...


class ExecutorRegistry(Registry[SummaryExecutor]):
    """Registry for summary executors (github, bookmark, youtube)."""

    def __init__(self):
        super().__init__("Executor")


# Global registry instance
executor_registry = ExecutorRegistry()
