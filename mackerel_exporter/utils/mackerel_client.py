from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..errors import MackerelAPIError
from ..models.mackerel_models import (
    GraphDefsParam,
    Host,
    HostMetricValue,
    HostParam,
    MetricValue,
    Role,
    Service,
)

logger = logging.getLogger("mackerel.exporter.client")

DEFAULT_BASE_URL = "https://api.mackerelio.com"


class MackerelClient:
    """
    Thin wrapper around the Mackerel API v0.

    - No retries; the next export cycle is the retry
    - Every failure (transport or HTTP status) becomes MackerelAPIError
    - Payloads are built from the pydantic models in models.mackerel_models
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "X-Api-Key": api_key,
                "Content-Type": "application/json",
                "User-Agent": "mackerel-exporter-python",
            }
        )
        logger.info("MackerelClient initialized with base URL: %s", self.base_url)

    # ------------------------------------------------------------------
    # Internal HTTP helpers
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise MackerelAPIError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise MackerelAPIError(f"{method} {path}: {resp.text[:200]}", status_code=resp.status_code)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise MackerelAPIError(f"{method} {path} returned non-JSON: {resp.text[:200]}") from exc

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", path, params=params)

    def _post(self, path: str, payload: Any) -> Dict[str, Any]:
        return self._request("POST", path, json=payload)

    def _put(self, path: str, payload: Any) -> Dict[str, Any]:
        return self._request("PUT", path, json=payload)

    # ------------------------------------------------------------------
    # Hosts
    # ------------------------------------------------------------------

    def find_hosts(self, custom_identifier: str) -> List[Host]:
        data = self._get("/api/v0/hosts", params={"customIdentifier": custom_identifier})
        return [Host.model_validate(h) for h in data.get("hosts", [])]

    def create_host(self, param: HostParam) -> str:
        return self._post("/api/v0/hosts", param.dump())["id"]

    def update_host(self, host_id: str, param: HostParam) -> str:
        return self._put(f"/api/v0/hosts/{host_id}", param.dump())["id"]

    # ------------------------------------------------------------------
    # Services and roles
    # ------------------------------------------------------------------

    def find_services(self) -> List[Service]:
        data = self._get("/api/v0/services")
        return [Service.model_validate(s) for s in data.get("services", [])]

    def create_service(self, name: str, memo: str = "") -> Service:
        return Service.model_validate(self._post("/api/v0/services", {"name": name, "memo": memo}))

    def find_roles(self, service: str) -> List[Role]:
        data = self._get(f"/api/v0/services/{service}/roles")
        return [Role.model_validate(r) for r in data.get("roles", [])]

    def create_role(self, service: str, name: str, memo: str = "") -> Role:
        data = self._post(f"/api/v0/services/{service}/roles", {"name": name, "memo": memo})
        return Role.model_validate(data)

    # ------------------------------------------------------------------
    # Graph definitions and metric values
    # ------------------------------------------------------------------

    def create_graph_defs(self, defs: Sequence[GraphDefsParam]) -> None:
        self._post("/api/v0/graph-defs/create", [d.dump() for d in defs])

    def post_host_metric_values(self, values: Sequence[HostMetricValue]) -> None:
        self._post("/api/v0/tsdb", [v.dump() for v in values])

    def post_service_metric_values(self, service: str, values: Sequence[MetricValue]) -> None:
        self._post(f"/api/v0/services/{service}/tsdb", [v.dump() for v in values])
