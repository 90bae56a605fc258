from fastapi import Depends, HTTPException, Request

from gateway.core.config import Settings, get_settings
from gateway.core.errors import ConfigurationError, GatewayError
from gateway.core.network import NoProxyRegistry
from gateway.services.storage import (
    StorageClientFactory,
    StorageConnector,
    StorageCredentials,
    create_storage_client,
)


def to_http_exception(exc: GatewayError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


def get_storage_credentials(settings: Settings = Depends(get_settings)) -> StorageCredentials:
    try:
        return StorageCredentials.from_settings(settings).require_complete()
    except ConfigurationError as exc:
        raise to_http_exception(exc) from exc


def get_no_proxy_registry(request: Request) -> NoProxyRegistry:
    return request.app.state.no_proxy_registry


def get_storage_client_factory() -> StorageClientFactory:
    return create_storage_client


def get_storage_connector(
    registry: NoProxyRegistry = Depends(get_no_proxy_registry),
    client_factory: StorageClientFactory = Depends(get_storage_client_factory),
) -> StorageConnector:
    return StorageConnector(registry, client_factory)
