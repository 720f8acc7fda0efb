"""Interfaces for datastores and fetchers, and the fetcher registries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .models import AppModuleVul, RawFile, Vulnerability


class Datastore(ABC):
    """A backend that receives the collected vulnerabilities."""

    @abstractmethod
    def insert_vulnerabilities(
        self,
        os_vuls: list[Vulnerability],
        app_vuls: list[AppModuleVul],
        raw_files: list[RawFile],
    ) -> None:
        """Store OS and application vulnerabilities and raw files."""

    @abstractmethod
    def close(self) -> None:
        """Release the resources held by the store."""


class NetInterface(ABC):
    """Downloads web pages."""

    @abstractmethod
    def download_html_page(self, url: str) -> tuple[str, str]:
        """Return the page body and its plain-text rendering."""


@dataclass
class FetcherResponse:
    vulnerabilities: list[Vulnerability] = field(default_factory=list)


@dataclass
class AppFetcherResponse:
    vulnerabilities: list[AppModuleVul] = field(default_factory=list)


@dataclass
class RawFetcherResponse:
    name: str = ""
    raw: bytes = b""


class Fetcher(ABC):
    """Fetches OS distribution vulnerabilities."""

    @abstractmethod
    def fetch_update(self) -> FetcherResponse:
        """Fetch the current vulnerabilities."""

    @abstractmethod
    def clean(self) -> None:
        """Remove anything the fetch left behind."""


class AppFetcher(ABC):
    """Fetches application module vulnerabilities."""

    @abstractmethod
    def fetch_update(self) -> AppFetcherResponse:
        """Fetch the current application vulnerabilities."""

    @abstractmethod
    def clean(self) -> None:
        """Remove anything the fetch left behind."""


class RawFetcher(ABC):
    """Fetches a raw file that is shipped unchanged in the database."""

    @abstractmethod
    def fetch_update(self) -> RawFetcherResponse:
        """Fetch the raw file."""

    @abstractmethod
    def clean(self) -> None:
        """Remove anything the fetch left behind."""


FETCHERS: dict[str, Fetcher] = {}
APP_FETCHERS: dict[str, AppFetcher] = {}
RAW_FETCHERS: dict[str, RawFetcher] = {}


def _register(registry: dict, name: str, fetcher: object) -> None:
    if not name:
        raise ValueError("updater: could not register a Fetcher with an empty name")
    if fetcher is None:
        raise ValueError("updater: could not register a nil Fetcher")
    if name in registry:
        raise ValueError(f"updater: RegisterFetcher called twice for {name}")
    registry[name] = fetcher


def register_fetcher(name: str, fetcher: Fetcher) -> None:
    """Make an OS fetcher available under name; names must be unique."""
    _register(FETCHERS, name, fetcher)


def register_app_fetcher(name: str, fetcher: AppFetcher) -> None:
    """Make an application fetcher available under name; names must be unique."""
    _register(APP_FETCHERS, name, fetcher)


def register_raw_fetcher(name: str, fetcher: RawFetcher) -> None:
    """Make a raw file fetcher available under name; names must be unique."""
    _register(RAW_FETCHERS, name, fetcher)