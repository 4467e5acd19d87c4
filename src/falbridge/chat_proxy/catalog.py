from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, List

import httpx
from pydantic import ValidationError

from .. import __version__
from .config import ProxyConfig
from .errors import err_upstream
from .models import ImageCatalogEntry, ModelDescriptor

logger = logging.getLogger(__name__)


def _image_entries(payload: Any) -> List[ImageCatalogEntry]:
    """Extract entries from the frontend search payload (``data.models``)."""
    data = payload.get("data") if isinstance(payload, dict) else None
    raw = data.get("models") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        return []
    entries: List[ImageCatalogEntry] = []
    for item in raw:
        try:
            entries.append(ImageCatalogEntry.model_validate(item))
        except ValidationError:
            continue
    return entries


def synthesize_descriptor(entry: ImageCatalogEntry) -> Dict[str, Any]:
    context_length = entry.context_length or 4096
    descriptor = ModelDescriptor(
        id=entry.slug,
        name=entry.name or entry.slug,
        description=entry.description or "",
        context_length=context_length,
        top_provider={"context_length": context_length},
    )
    if entry.input_modalities:
        descriptor.architecture.input_modalities = list(entry.input_modalities)
    if entry.output_modalities:
        outputs = list(entry.output_modalities)
        if "image" not in outputs:
            outputs.append("image")
        descriptor.architecture.output_modalities = outputs
    return descriptor.model_dump()


def _backfill_image_output(existing: Dict[str, Any], entry: ImageCatalogEntry) -> None:
    architecture = existing.get("architecture")
    if architecture is None:
        architecture = existing["architecture"] = {}
    if not isinstance(architecture, dict):
        return
    current = architecture.get("output_modalities")
    current = list(current) if isinstance(current, list) else []
    if "image" in current:
        return
    for modality in entry.output_modalities or ["image"]:
        if modality not in current:
            current.append(modality)
    architecture["output_modalities"] = current


def merge_catalogs(
    general: List[Dict[str, Any]], image_entries: List[ImageCatalogEntry]
) -> List[Dict[str, Any]]:
    """Merge the image-only catalog into the general one, deduplicated by id.

    Existing descriptors only ever gain output modalities; unknown image
    models are appended with synthesized general-catalog fields.
    """

    merged = [copy.deepcopy(m) for m in general if isinstance(m, dict)]
    by_id = {m.get("id"): m for m in merged if m.get("id")}
    for entry in image_entries:
        if not entry.slug:
            continue
        existing = by_id.get(entry.slug)
        if existing is None:
            descriptor = synthesize_descriptor(entry)
            merged.append(descriptor)
            by_id[entry.slug] = descriptor
        else:
            _backfill_image_output(existing, entry)
    return merged


class ModelCatalog:
    def __init__(self, cfg: ProxyConfig, client: httpx.AsyncClient):
        self.cfg = cfg
        self.client = client

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self.cfg.user_agent or f"falbridge/{__version__}",
        }

    async def _fetch_general(self) -> List[Dict[str, Any]]:
        try:
            resp = await self.client.get(self.cfg.models_url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise err_upstream(502, f"Failed to fetch models: {exc}") from exc
        if not resp.is_success:
            raise err_upstream(
                resp.status_code, f"Failed to fetch models: {resp.status_code}"
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise err_upstream(502, f"Failed to fetch models: {exc}") from exc
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, list) else []

    async def _fetch_image_models(self) -> List[ImageCatalogEntry]:
        try:
            resp = await self.client.get(
                self.cfg.image_models_url, headers=self._headers
            )
            if not resp.is_success:
                logger.warning(
                    "[catalog] Image model listing returned %s; skipping",
                    resp.status_code,
                )
                return []
            return _image_entries(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("[catalog] Image model listing unavailable: %s", exc)
            return []

    async def fetch(self) -> Dict[str, Any]:
        general, image_entries = await asyncio.gather(
            self._fetch_general(), self._fetch_image_models()
        )
        data = merge_catalogs(general, image_entries)
        logger.info(
            "[catalog] %d models (%d from image listing)",
            len(data),
            len(data) - len(general),
        )
        return {"object": "list", "data": data}
