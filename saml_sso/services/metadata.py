"""SP metadata publisher.

A pure read: resolve the provider, build its SP descriptor and render it.
XML is the federation document IdPs import; JSON is a convenience view of
the same descriptor fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from saml_sso.errors import BadRequestError
from saml_sso.saml.metadata import MetadataError, build_sp_descriptor
from saml_sso.saml.toolkit import SAMLToolkit
from saml_sso.services.registry import ProviderRegistry

log = structlog.get_logger(__name__)


class MetadataFormat(StrEnum):
    XML = "xml"
    JSON = "json"


@dataclass(frozen=True)
class MetadataDocument:
    format: MetadataFormat
    content: str | dict[str, Any]

    @property
    def media_type(self) -> str:
        return "application/xml" if self.format is MetadataFormat.XML else "application/json"


class MetadataPublisher:
    def __init__(self, registry: ProviderRegistry, toolkit: SAMLToolkit) -> None:
        self._registry = registry
        self._toolkit = toolkit

    async def publish(
        self, provider_id: str, format: MetadataFormat = MetadataFormat.XML
    ) -> MetadataDocument:
        provider = await self._registry.lookup(provider_id)
        try:
            sp = build_sp_descriptor(provider.config)
        except MetadataError as exc:
            log.warning(
                "sso.metadata_invalid",
                provider_id=provider_id,
                error=str(exc),
            )
            raise BadRequestError("Stored SP metadata could not be parsed") from exc

        if format is MetadataFormat.JSON:
            return MetadataDocument(format=format, content=sp.to_public_dict())
        return MetadataDocument(format=format, content=self._toolkit.render_metadata(sp))
