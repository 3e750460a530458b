from dataclasses import dataclass, field
from typing import Iterator, Tuple


@dataclass(frozen=True)
class Dependency:
    """A single declared crate dependency: package name and raw version requirement."""

    name: str
    version: str
    source_file: str = field(default="", compare=False)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.version)


@dataclass(frozen=True)
class ManifestDependencies:
    """Dependencies extracted from one manifest, in declaration order."""

    dependencies: Tuple[Dependency, ...] = ()
    dev_dependencies: Tuple[Dependency, ...] = ()
    source_file: str = ""

    def all(self) -> Iterator[Dependency]:
        """Iterate regular dependencies, then development dependencies."""
        yield from self.dependencies
        yield from self.dev_dependencies

    def __len__(self) -> int:
        return len(self.dependencies) + len(self.dev_dependencies)
