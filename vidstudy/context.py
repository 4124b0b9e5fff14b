"""
Application context: the engine, the two document handles, and the stores
built on them. Open once at startup, close at shutdown.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Callable, Optional

from sqlalchemy.engine import Engine

from vidstudy.core.config import Settings, get_settings
from vidstudy.db.session import make_engine
from vidstudy.schemas.settings import AppSettings
from vidstudy.services.llm.gateway import ProviderGateway, gateway_from_settings
from vidstudy.services.store import (
    DATA_DOCUMENT,
    SETTINGS_DOCUMENT,
    ChatStore,
    DocumentStore,
    SessionStore,
    SettingsStore,
)

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[AppSettings], ProviderGateway]


class AppContext:
    def __init__(
        self,
        config: Optional[Settings] = None,
        engine: Optional[Engine] = None,
        gateway_factory: Optional[GatewayFactory] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or get_settings()
        self._owns_engine = engine is None
        self.engine = engine or make_engine(self.config.database_url)
        self.rng = rng

        self.settings_document = DocumentStore(SETTINGS_DOCUMENT, self.engine)
        self.data_document = DocumentStore(DATA_DOCUMENT, self.engine)

        self.settings = SettingsStore(self.settings_document)
        self.sessions = SessionStore(self.data_document)
        self.chats = ChatStore(self.data_document)

        self._gateway_factory = gateway_factory or (lambda s: gateway_from_settings(s, rng=self.rng))

    def open(self) -> "AppContext":
        self.settings_document.open()
        self.data_document.open()
        logger.info("Opened app context (%s)", self.engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        self.settings_document.close()
        self.data_document.close()
        if self._owns_engine:
            self.engine.dispose()
        logger.info("Closed app context")

    async def __aenter__(self) -> "AppContext":
        return self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    async def gateway(self) -> ProviderGateway:
        """A gateway for the currently selected provider. Caller closes it."""
        return self._gateway_factory(await self.settings.get())
