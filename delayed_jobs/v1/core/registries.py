from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, runtime_checkable

from delayed_jobs.config.logging import get_logger

logger = get_logger(__name__)

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
                "registry is frozen"
            )
        if name in self._implementations:
            raise ValueError(
                f"Duplicate {self.name.lower()} name '{name}': "
                f"{type(self._implementations[name]).__name__} and "
                f"{type(implementation).__name__}"
            )
        self._implementations[name] = implementation

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


# Job Handler Registry - background processing handlers
@runtime_checkable
class JobHandler(Protocol):
    """
    Protocol for delayed job handlers.

    Class attributes configure how jobs for the handler are created:
    ``queue_name`` (defaults to the class name), ``priority`` (higher runs
    first, defaults to 5) and ``description``.
    """

    async def run(self, actor_id: str) -> None:
        """
        Perform the work for one job.

        Returning normally marks the job successful. Raise
        ``RecoverableJobError`` to retry with backoff or ``TerminalJobError``
        to complete the job with failure. Any other exception is retried.
        """
        ...


DEFAULT_PRIORITY = 5


@dataclass(frozen=True)
class HandlerMetadata:
    """Static configuration of a registered handler."""

    queue_name: str
    priority: int
    description: str
    handler_class: type


def queue_name_for(handler_class: type) -> str:
    return getattr(handler_class, "queue_name", None) or handler_class.__name__


class JobHandlerRegistry(Registry[JobHandler]):
    """Maps queue names to handler instances and handler classes to metadata."""

    def __init__(self):
        super().__init__("Job handler")
        self._metadata: dict[type, HandlerMetadata] = {}

    def register(self, handler: JobHandler) -> HandlerMetadata:  # type: ignore[override]
        handler_class = type(handler)
        if not hasattr(handler_class, "priority"):
            logger.warning(
                "Handler has no priority, using default",
                handler=handler_class.__name__,
                priority=DEFAULT_PRIORITY,
            )

        metadata = HandlerMetadata(
            queue_name=queue_name_for(handler_class),
            priority=int(getattr(handler_class, "priority", DEFAULT_PRIORITY)),
            description=getattr(handler_class, "description", ""),
            handler_class=handler_class,
        )

        super().register(metadata.queue_name, handler)
        self._metadata[handler_class] = metadata

        logger.info(
            "Registered job handler",
            handler=handler_class.__name__,
            queue_name=metadata.queue_name,
            priority=metadata.priority,
        )
        return metadata

    def get_handler(self, queue_name: str | None) -> JobHandler | None:
        """Handler for a queue name (used when a job is executed)."""
        if not queue_name:
            return None
        return self._implementations.get(queue_name)

    def get_metadata(self, handler_type: type) -> HandlerMetadata | None:
        """Metadata for a handler class (used when a job is created)."""
        return self._metadata.get(handler_type)

    def registered_queues(self) -> frozenset[str]:
        return frozenset(self._implementations)

    def all_metadata(self) -> list[HandlerMetadata]:
        return sorted(
            self._metadata.values(), key=lambda m: (-m.priority, m.queue_name)
        )


# Global registry instance, populated once at startup by registry_init
job_handler_registry = JobHandlerRegistry()
