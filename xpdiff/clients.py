"""The bundle of clients that talk to the API server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from xpdiff.apply_client import ApplyClient
from xpdiff.resource_client import ResourceClient
from xpdiff.schema_client import SchemaClient
from xpdiff.type_converter import TypeConverter


@dataclass
class Clients:
    """All API-server clients, passed around together."""

    apply: ApplyClient
    resource: ResourceClient
    schema: SchemaClient
    type_converter: TypeConverter

    @classmethod
    def create(
        cls, dynamic: Any, discovery: Any, logger: Optional[logging.Logger] = None
    ) -> "Clients":
        """Build every client over one dynamic and one discovery backend."""
        types = TypeConverter(discovery, logger)
        return cls(
            apply=ApplyClient(dynamic, types, logger),
            resource=ResourceClient(dynamic, discovery, types, logger),
            schema=SchemaClient(dynamic, types, logger),
            type_converter=types,
        )