"""Register the prepared database with the Exoquic control plane."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from exoquic_configurator.config.models import CloudConfig, ConfiguratorConfig
from exoquic_configurator.errors import RegistrationError

logger = structlog.get_logger()


class RegistrationPayload(BaseModel):
    """JSON body expected by the registration endpoint.

    Carries the replication password in clear text; the endpoint is trusted
    to store it.
    """

    host: str
    port: str
    database: str
    username: str
    password: str
    replication_slot: str
    publication: str
    api_key: str

    @classmethod
    def from_config(cls, config: ConfiguratorConfig) -> RegistrationPayload:
        if config.cloud.api_key is None:
            msg = "cloud registration requires an API key"
            raise ValueError(msg)
        return cls(
            host=config.postgres.host,
            port=str(config.postgres.port),
            database=config.postgres.database,
            username=config.replication.user,
            password=config.replication.password.get_secret_value(),
            replication_slot=config.replication.slot_name,
            publication=config.replication.publication_name,
            api_key=config.cloud.api_key.get_secret_value(),
        )


class CloudRegistrar:
    """Thin wrapper around the registration endpoint. No retries."""

    def __init__(self, config: CloudConfig) -> None:
        if config.api_key is None:
            msg = "CloudRegistrar requires an API key"
            raise ValueError(msg)
        self._config = config
        try:
            self._client = httpx.Client(
                base_url=config.url,
                timeout=config.timeout_seconds,
                headers={"x-api-key": config.api_key.get_secret_value()},
            )
        except (ValueError, httpx.InvalidURL) as exc:
            msg = f"invalid registration settings: {exc}"
            raise RegistrationError(msg) from exc

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CloudRegistrar:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def register(self, payload: RegistrationPayload) -> dict[str, Any]:
        """POST *payload*; anything but 200/201 raises RegistrationError.

        Transport failures surface as ``httpx.HTTPError``. Requests httpx
        cannot build or encode (bad host names, non-ASCII headers) are
        raised as RegistrationError.
        """
        try:
            resp = self._client.post(
                self._config.register_path,
                content=payload.model_dump_json(),
                headers={"Content-Type": "application/json"},
            )
        except (ValueError, httpx.InvalidURL) as exc:
            msg = f"API registration request could not be sent: {exc}"
            raise RegistrationError(msg) from exc
        if resp.status_code not in (200, 201):
            raise RegistrationError(
                f"API registration failed with status {resp.status_code}: {resp.text}"
            )
        logger.info(
            "cloud.registered",
            url=str(resp.request.url),
            database=payload.database,
        )
        try:
            return resp.json()  # type: ignore[no-any-return]
        except ValueError:
            return {}
