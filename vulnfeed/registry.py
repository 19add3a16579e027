"""The set of vulnerability sources and a way to run their updates."""

from __future__ import annotations

import os
from collections.abc import Iterable
from typing import Protocol

from .redhat import RedHatSource
from .redhat_oval import RedHatOvalSource
from .rocky import RockySource
from .store import Store
from .suse_cvrf import Distribution, SuseCvrfSource
from .ubuntu import UbuntuSource
from .wolfi import WolfiSource


class VulnSource(Protocol):
    """A data source that loads its feed into a store."""

    def name(self) -> str: ...

    def update(self, directory: str | os.PathLike[str]) -> None: ...


def all_sources(store: Store) -> list[VulnSource]:
    """Every known source, bound to the given store, in update order."""
    return [
        RedHatSource(store),
        RedHatOvalSource(store),
        UbuntuSource(store),
        RockySource(store),
        SuseCvrfSource(store, Distribution.SUSE_ENTERPRISE_LINUX),
        SuseCvrfSource(store, Distribution.OPENSUSE),
        WolfiSource(store),
    ]


def update_all(store: Store, directory: str | os.PathLike[str],
               names: Iterable[str] | None = None) -> list[str]:
    """Update the named sources (all when names is None); return the names updated."""
    sources = all_sources(store)
    if names is not None:
        wanted = [str(n) for n in names]
        known = {str(s.name()) for s in sources}
        unknown = [n for n in wanted if n not in known]
        if unknown:
            raise ValueError(f"unknown vulnerability source: {', '.join(unknown)}")
        sources = [s for s in sources if str(s.name()) in wanted]

    updated = []
    for source in sources:
        source.update(directory)
        updated.append(str(source.name()))
    return updated