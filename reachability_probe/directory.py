"""Directory lookups that supply default probe targets.

The prober only consumes ``DirectoryRecord.name``; where the names come
from (a static list, a host file, Active Directory) is a deployment choice.

SECURITY: The LDAP bind password is NEVER logged.
"""

import fnmatch
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ldap3 import NONE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """The directory could not be read."""


@dataclass
class DirectoryRecord:
    """A computer known to the directory."""

    name: str
    dns_host_name: str | None = None


class Directory(ABC):
    """Source of computer records."""

    @abstractmethod
    def lookup(self, name_filter: str = "*") -> list[DirectoryRecord]:
        """
        Return records whose name matches a shell-style wildcard.

        Raises:
            DirectoryError: If the backing source cannot be read
        """
        pass


def _match(names: Iterable[str], name_filter: str) -> list[DirectoryRecord]:
    pattern = (name_filter or "*").casefold()
    return [
        DirectoryRecord(name=n)
        for n in names
        if fnmatch.fnmatchcase(n.casefold(), pattern)
    ]


class StaticDirectory(Directory):
    """Fixed, in-memory list of computer names."""

    def __init__(self, names: Iterable[str]):
        self.names = [n.strip() for n in names if n and n.strip()]

    def lookup(self, name_filter: str = "*") -> list[DirectoryRecord]:
        return _match(self.names, name_filter)


def parse_host_lines(raw: str) -> list[str]:
    """Parses one host per line. Lines starting with # or ; are ignored."""
    out: list[str] = []
    for line in (raw or "").splitlines():
        s = line.strip()
        if not s:
            continue
        if s.startswith("#") or s.startswith(";"):
            continue
        out.append(s)
    return out


class FileDirectory(Directory):
    """Host file with one computer name per line, re-read on every lookup."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def lookup(self, name_filter: str = "*") -> list[DirectoryRecord]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise DirectoryError(f"Cannot read host file {self.path}: {e}") from e
        return _match(parse_host_lines(raw), name_filter)


def build_ldap_filter(name_filter: str) -> str:
    """Turn a wildcard name filter into an AD computer search filter."""
    pattern = (name_filter or "*").strip() or "*"
    escaped = "*".join(escape_filter_chars(part) for part in pattern.split("*"))
    if escaped == "*":
        return "(objectClass=computer)"
    return f"(&(objectClass=computer)(name={escaped}))"


class LdapDirectory(Directory):
    """Computer objects from Active Directory."""

    page_size = 500

    def __init__(
        self,
        server: str,
        base_dn: str,
        bind_user: str,
        bind_password: str,
        port: int = 389,
        use_ssl: bool = False,
    ):
        if not server or not base_dn:
            raise DirectoryError("LDAP directory needs a server and a base DN")
        self.server = Server(host=server, port=port, use_ssl=use_ssl, get_info=NONE)
        self.base_dn = base_dn
        self.bind_user = bind_user
        self._bind_password = bind_password

    def __repr__(self) -> str:
        """Prevent credential exposure in logs."""
        server = getattr(self, "server", None)
        return (
            f"LdapDirectory(server={getattr(server, 'host', None)}, "
            f"base_dn={getattr(self, 'base_dn', None)}, "
            f"bind_user={getattr(self, 'bind_user', None)}, password=***)"
        )

    def lookup(self, name_filter: str = "*") -> list[DirectoryRecord]:
        search_filter = build_ldap_filter(name_filter)
        logger.info(f"Searching {self.base_dn} for computers: {search_filter}")

        conn = None
        try:
            conn = Connection(
                self.server,
                user=self.bind_user or None,
                password=self._bind_password or None,
                auto_bind=False,
            )
            conn.open()
            if not conn.bind():
                raise DirectoryError(
                    f"LDAP bind failed for {self.bind_user or 'anonymous'}"
                )

            entries = conn.extend.standard.paged_search(
                search_base=self.base_dn,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=["name", "dNSHostName"],
                paged_size=self.page_size,
                generator=False,
            )
            records: list[DirectoryRecord] = []
            for entry in entries or []:
                if entry.get("type") != "searchResEntry":
                    continue
                attrs = entry.get("attributes") or {}
                name = _first(attrs.get("name"))
                if not name:
                    continue
                records.append(
                    DirectoryRecord(
                        name=name, dns_host_name=_first(attrs.get("dNSHostName"))
                    )
                )
            logger.info(f"Directory returned {len(records)} computers")
            return records
        except LDAPException as e:
            raise DirectoryError(f"LDAP search failed: {type(e).__name__}") from e
        finally:
            if conn is not None:
                try:
                    conn.unbind()
                except LDAPException:
                    pass


def _first(value) -> str | None:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def build_directory(settings) -> Directory:
    """Create the directory named by ``settings.directory_source``."""
    source = (settings.directory_source or "").strip().lower()
    if source == "static":
        return StaticDirectory(settings.directory_hosts_list)
    if source == "file":
        return FileDirectory(settings.directory_file)
    if source == "ldap":
        return LdapDirectory(
            server=settings.ldap_server,
            base_dn=settings.ldap_base_dn,
            bind_user=settings.ldap_bind_user,
            bind_password=settings.ldap_bind_password,
            port=settings.ldap_port,
            use_ssl=settings.ldap_use_ssl,
        )
    raise DirectoryError(f"Unsupported directory source: {source}")
