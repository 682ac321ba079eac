"""STAC client connector for catalog search operations."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import requests
from dagster import ConfigurableResource
from pystac_client import Client
from pystac_client.exceptions import APIError
from pystac_client.stac_api_io import StacApiIO

from cloudnative_workflows.connectors.settings import SettingsResource
from cloudnative_workflows.exceptions import RequestError


class STACResource(ConfigurableResource[Any]):
    """STAC resource for creating STAC API clients."""

    settings: SettingsResource

    def create_client(self, stac_io: StacApiIO | None = None) -> Any:
        """Create STAC client.

        :param stac_io: Optional IO object owning the HTTP session
        :returns: Configured STAC client
        :raises RequestError: If the catalog cannot be reached
        """
        url = self.settings.stac_api_url
        try:
            return Client.open(url, stac_io=stac_io)
        except (APIError, requests.RequestException) as e:
            raise RequestError(f"Could not connect to STAC API at {url}: {e}") from e

    @contextmanager
    def client_session(self) -> Iterator[Any]:
        """Open a STAC client and close its HTTP session on exit.

        :yields: Configured STAC client
        """
        stac_io = StacApiIO(timeout=self.settings.get_request_timeout())
        try:
            yield self.create_client(stac_io=stac_io)
        finally:
            stac_io.session.close()
