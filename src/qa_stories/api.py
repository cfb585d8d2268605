"""Client for the catalog-backed deployment's REST API."""

from typing import Any

import requests
from loguru import logger

from qa_stories.config import API_TIMEOUT, API_TOKEN_FILES, CATALOG_API_URL
from qa_stories.core.templates.catalog import parse_template_record, template_to_record
from qa_stories.models.story import Template


class CatalogApi:
    """Thin wrapper over the /api/templates, /api/stories, /api/tests resources."""

    def __init__(self, *, base_url: str = CATALOG_API_URL, timeout: float = API_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.sess = requests.Session()

        api_token_name: str | None = None
        for token_path in API_TOKEN_FILES:
            try:
                token = token_path.read_text(encoding="utf-8").strip()
                api_token_name = str(token_path)
                break
            except FileNotFoundError:
                pass
        else:
            msg = f"Cannot find catalog API token file, was looking at {API_TOKEN_FILES!r}"
            raise RuntimeError(msg)

        self.sess.headers["Authorization"] = f"Bearer {token}"
        logger.debug("API ready: {} with token from {!r}", self.base_url, api_token_name)

    def request(self, method: str, path: str, *, data: Any = None) -> Any:
        """Invoke an endpoint and return the decoded JSON body.

        Returns:
            The JSON body, or None for a 404 response.
        """
        logger.debug("Making request: {} {}", method, path)
        r = self.sess.request(method, f"{self.base_url}{path}", json=data, timeout=self.timeout)
        if r.status_code == 404:
            return None
        r.raise_for_status()
        if not r.content:
            return None
        return r.json()


def _unwrap(body: Any) -> Any:
    # Some endpoints wrap their payload as {"data": ...}.
    if isinstance(body, dict) and "data" in body and "name" not in body:
        return body["data"]
    return body


class RestTemplateCatalog:
    """TemplateCatalog adapter over CatalogApi."""

    def __init__(self, api: CatalogApi) -> None:
        self.api = api

    def get_by_id(self, template_id: str) -> Template | None:
        body = _unwrap(self.api.request("GET", f"/api/templates/{template_id}"))
        if body is None:
            return None
        tid = body.get("id", template_id) if isinstance(body, dict) else template_id
        return parse_template_record(body, template_id=str(tid))

    def list_templates(self) -> list[Template]:
        body = _unwrap(self.api.request("GET", "/api/templates")) or []
        return [parse_template_record(r) for r in body]

    def create_template(self, template: Template) -> Template:
        record = template_to_record(template, include_id=False)
        body = _unwrap(self.api.request("POST", "/api/templates", data=record))
        return parse_template_record(body)
