"""Oxide control-plane API adapter built on the azure-core HTTP pipeline.

One method per remote operation, each taking typed parameters and returning
a typed model. Failures are classified for the reconciliation engine:

- HTTP 404 raises ResourceNotFoundError (not-found)
- any other non-2xx status raises HttpResponseError or a subclass
- transport failures surface as ServiceRequestError / ServiceResponseError

The adapter performs no retries; the pipeline is built without a retry policy.
The API error message is preserved verbatim in the raised exception.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from urllib.parse import quote

from azure.core import PipelineClient
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.core.pipeline.policies import (
    HeadersPolicy,
    NetworkTraceLoggingPolicy,
    UserAgentPolicy,
)
from azure.core.rest import HttpRequest, HttpResponse
from pydantic import BaseModel, ValidationError

from .config import Config
from .models import (
    Disk,
    DiskCreate,
    Image,
    ImageCreate,
    Instance,
    InstanceCreate,
    IpPool,
    IpPoolCreate,
    IpPoolUpdate,
    ResultsPage,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Status codes mapped to specific azure-core exception types
ERROR_MAP: dict[int, type[HttpResponseError]] = {
    401: ClientAuthenticationError,
    403: ClientAuthenticationError,
    404: ResourceNotFoundError,
    409: ResourceExistsError,
}

# Upper bound on pages fetched by a list call
MAX_LIST_PAGES = 100


def is_not_found(error: BaseException) -> bool:
    """Check whether an adapter failure means the remote object is absent."""
    return isinstance(error, ResourceNotFoundError)


def _error_message(response: HttpResponse) -> str:
    """Extract the API error message, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("message"):
        message = str(body["message"])
        if body.get("error_code"):
            message = f"{body['error_code']}: {message}"
        if body.get("request_id"):
            message = f"{message} (request_id={body['request_id']})"
        return message

    text = response.text()
    return text or f"HTTP {response.status_code}"


def raise_for_status(response: HttpResponse) -> None:
    """Raise a classified azure-core exception for non-2xx responses."""
    if 200 <= response.status_code < 300:
        return

    error_type = ERROR_MAP.get(response.status_code, HttpResponseError)
    message = f"{response.status_code} {response.reason}: {_error_message(response)}"
    raise error_type(message=message, response=response)


class OxideClient:
    """Typed client for the Oxide control-plane API.

    Args:
        config: Validated provider configuration.
        **kwargs: Passed to PipelineClient (e.g. ``transport`` in tests).
    """

    def __init__(self, config: Config, **kwargs: Any) -> None:
        self._config = config
        policies = [
            HeadersPolicy(
                base_headers={
                    "Authorization": f"Bearer {config.token}",
                    "Accept": "application/json",
                }
            ),
            UserAgentPolicy(base_user_agent=config.user_agent),
            NetworkTraceLoggingPolicy(),
        ]
        self._client = PipelineClient(base_url=config.base_url, policies=policies, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> OxideClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> HttpResponse:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        request = HttpRequest(
            method,
            f"{self._config.base_url}{path}",
            params=query,
            json=body,
        )
        logger.debug("Oxide API request", extra={"method": method, "path": path})

        response = self._client.send_request(
            request,
            read_timeout=self._config.default_timeout_seconds,
        )
        raise_for_status(response)
        return response

    def _parse(self, response: HttpResponse, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise HttpResponseError(
                message=f"Unexpected {model.__name__} response body: {e}",
                response=response,
            ) from e

    def _list(
        self,
        path: str,
        model: type[ModelT],
        params: dict[str, Any] | None = None,
    ) -> list[ModelT]:
        items: list[ModelT] = []
        query = dict(params or {})

        for _ in range(MAX_LIST_PAGES):
            page = self._parse(self._send("GET", path, params=query), ResultsPage)
            try:
                items.extend(model.model_validate(item) for item in page.items)
            except ValidationError as e:
                raise AzureError(f"Unexpected {model.__name__} in list response: {e}") from e
            if not page.next_page:
                return items
            query = {**(params or {}), "page_token": page.next_page}

        logger.warning(
            "List truncated after maximum page count",
            extra={"path": path, "max_pages": MAX_LIST_PAGES},
        )
        return items

    @staticmethod
    def _ref(name_or_id: str) -> str:
        return quote(str(name_or_id), safe="")

    # -------------------------------------------------------------------------
    # Disks
    # -------------------------------------------------------------------------

    def disk_create(self, project: str, body: DiskCreate) -> Disk:
        response = self._send("POST", "/v1/disks", params={"project": project}, body=body.to_body())
        return self._parse(response, Disk)

    def disk_view(self, disk: str, project: str | None = None) -> Disk:
        response = self._send("GET", f"/v1/disks/{self._ref(disk)}", params={"project": project})
        return self._parse(response, Disk)

    def disk_delete(self, disk: str, project: str | None = None) -> None:
        self._send("DELETE", f"/v1/disks/{self._ref(disk)}", params={"project": project})

    def disk_list(self, project: str) -> list[Disk]:
        return self._list("/v1/disks", Disk, {"project": project})

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def image_create(self, project: str, body: ImageCreate) -> Image:
        response = self._send(
            "POST", "/v1/images", params={"project": project}, body=body.to_body()
        )
        return self._parse(response, Image)

    def image_view(self, image: str, project: str | None = None) -> Image:
        response = self._send("GET", f"/v1/images/{self._ref(image)}", params={"project": project})
        return self._parse(response, Image)

    def image_delete(self, image: str, project: str | None = None) -> None:
        self._send("DELETE", f"/v1/images/{self._ref(image)}", params={"project": project})

    def image_list(self, project: str | None = None) -> list[Image]:
        return self._list("/v1/images", Image, {"project": project})

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def instance_create(self, project: str, body: InstanceCreate) -> Instance:
        response = self._send(
            "POST", "/v1/instances", params={"project": project}, body=body.to_body()
        )
        return self._parse(response, Instance)

    def instance_view(self, instance: str, project: str | None = None) -> Instance:
        response = self._send(
            "GET", f"/v1/instances/{self._ref(instance)}", params={"project": project}
        )
        return self._parse(response, Instance)

    def instance_delete(self, instance: str, project: str | None = None) -> None:
        self._send("DELETE", f"/v1/instances/{self._ref(instance)}", params={"project": project})

    def instance_list(self, project: str) -> list[Instance]:
        return self._list("/v1/instances", Instance, {"project": project})

    # -------------------------------------------------------------------------
    # IP pools
    # -------------------------------------------------------------------------

    def ip_pool_create(self, body: IpPoolCreate) -> IpPool:
        response = self._send("POST", "/v1/system/ip-pools", body=body.to_body())
        return self._parse(response, IpPool)

    def ip_pool_view(self, pool: str) -> IpPool:
        response = self._send("GET", f"/v1/system/ip-pools/{self._ref(pool)}")
        return self._parse(response, IpPool)

    def ip_pool_update(self, pool: str, body: IpPoolUpdate) -> IpPool:
        response = self._send(
            "PUT", f"/v1/system/ip-pools/{self._ref(pool)}", body=body.to_body()
        )
        return self._parse(response, IpPool)

    def ip_pool_delete(self, pool: str) -> None:
        self._send("DELETE", f"/v1/system/ip-pools/{self._ref(pool)}")

    def ip_pool_list(self) -> list[IpPool]:
        return self._list("/v1/system/ip-pools", IpPool)
