"""Turn raw file bytes into containers.

A buffer may be a static library (``ar`` archive), a single object file, or
both at once from the point of view of the probing below: archive parsing
and top-level object parsing are attempted independently.  Every member or
buffer that fails to parse is skipped; one bad member never aborts the rest.

Usage::

    from asmview.loader import ContainerStore, open_files

    store = ContainerStore()
    open_files(store, ["libfoo.a", "bar.o"])
    for container in store:
        print(container.name, len(container.symbols))
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from asmview.archive import is_archive, iter_members
from asmview.builder import build_container
from asmview.demangle import demangle as default_demangle
from asmview.errors import ArchiveError, ObjectFormatError
from asmview.formats import read_object
from asmview.model import Container

logger = logging.getLogger(__name__)

Demangler = Callable[[str], "str | None"]


class ContainerStore:
    """Append-only registry of loaded containers, in load order."""

    def __init__(self) -> None:
        self._containers: list[Container] = []

    def append(self, container: Container) -> None:
        self._containers.append(container)

    def find(self, name: str) -> Container | None:
        """First container whose display name is *name*."""
        for container in self._containers:
            if container.name == name:
                return container
        return None

    def __iter__(self) -> Iterator[Container]:
        return iter(self._containers)

    def __len__(self) -> int:
        return len(self._containers)

    def __getitem__(self, index: int) -> Container:
        return self._containers[index]


def parse_container(
    data: bytes,
    name: str,
    path: Path,
    demangler: Demangler | None = default_demangle,
) -> Container | None:
    """Parse one object buffer; ``None`` if it is not a supported object."""
    try:
        image = read_object(data)
    except ObjectFormatError as exc:
        logger.debug("Skipping %s: %s", name, exc)
        return None
    return build_container(image, name, path, demangler)


def open_buffer(
    store: ContainerStore,
    data: bytes,
    name: str,
    path: Path,
    demangler: Demangler | None = default_demangle,
) -> list[Container]:
    """Parse *data* as an archive and/or an object, appending results to *store*.

    Returns:
        The containers added by this call, in the order they were added.
    """
    added: list[Container] = []
    path = Path(path)

    if is_archive(data):
        try:
            for member in iter_members(data):
                if member.data is None:
                    logger.debug("Skipping member %s of %s: no data", member.name, name)
                    continue
                container = parse_container(member.data, member.name, path, demangler)
                if container is not None:
                    store.append(container)
                    added.append(container)
        except ArchiveError as exc:
            logger.debug("Skipping archive %s: %s", name, exc)

    container = parse_container(data, name, path, demangler)
    if container is not None:
        store.append(container)
        added.append(container)

    if not added:
        logger.debug("No containers found in %s", name)
    return added


def open_files(
    store: ContainerStore,
    paths: Iterable[str | Path],
    *,
    skip_unreadable: bool = False,
    demangler: Demangler | None = default_demangle,
) -> list[Container]:
    """Read every file in *paths* and load its containers into *store*.

    Raises:
        OSError: If a file cannot be read and *skip_unreadable* is false.
    """
    added: list[Container] = []
    for entry in paths:
        path = Path(entry)
        try:
            data = path.read_bytes()
        except OSError as exc:
            if not skip_unreadable:
                raise
            logger.warning("Skipping unreadable file %s: %s", path, exc)
            continue
        added.extend(open_buffer(store, data, path.name, path, demangler))
    return added
