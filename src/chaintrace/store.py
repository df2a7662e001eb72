"""Server list persisted as JSON, with passwords kept in the system keyring."""

from __future__ import annotations

import json
import logging
import os

import keyring
from keyring.errors import PasswordDeleteError

from chaintrace.errors import ConfigurationError
from chaintrace.models import Credentials, ServerConfig

logger = logging.getLogger(__name__)


class ServerStore:
    """CRUD over the known-server list."""

    def __init__(self, path: str, app_name: str = "ChainTrace") -> None:
        self.path = path
        self.app_name = app_name

    @staticmethod
    def keyring_key(server: ServerConfig) -> str:
        return f"{server.username}@{server.host}:{server.port}"

    def _load_records(self) -> list[dict]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigurationError(f"Cannot read server list {self.path}: {e}") from e
        servers = data.get("servers", []) if isinstance(data, dict) else None
        if not isinstance(servers, list):
            raise ConfigurationError(f"Malformed server list in {self.path}")
        return servers

    def _save_records(self, records: list[dict]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({"servers": records}, f, indent=2)

    def list_servers(self) -> list[ServerConfig]:
        """All servers, with passwords filled in from the keyring."""
        servers = []
        for record in self._load_records():
            server = ServerConfig.from_record(record)
            server.password = (
                keyring.get_password(self.app_name, self.keyring_key(server)) or ""
            )
            servers.append(server)
        return servers

    def get(self, server_id: str) -> ServerConfig | None:
        for server in self.list_servers():
            if server.id == server_id:
                return server
        return None

    def find_by_host(self, host: str) -> ServerConfig | None:
        for server in self.list_servers():
            if server.host == host:
                return server
        return None

    def save_server(self, server: ServerConfig) -> ServerConfig:
        """Insert or replace (by id). The password goes to the keyring only."""
        records = self._load_records()
        record = server.to_record()
        for i, existing in enumerate(records):
            if existing.get("id") == server.id:
                records[i] = record
                break
        else:
            records.append(record)

        if server.password:
            keyring.set_password(self.app_name, self.keyring_key(server), server.password)
        self._save_records(records)
        logger.info("Saved server %s (%s)", server.id, server.host)
        return server

    def delete_server(self, server_id: str) -> None:
        records = self._load_records()
        remaining = []
        for record in records:
            if record.get("id") != server_id:
                remaining.append(record)
                continue
            server = ServerConfig.from_record(record)
            try:
                keyring.delete_password(self.app_name, self.keyring_key(server))
            except PasswordDeleteError:
                pass  # No stored password
        self._save_records(remaining)

    def known_servers(self) -> list[Credentials]:
        """Snapshot of every server's credentials, for a chain trace."""
        return [server.credentials for server in self.list_servers()]
