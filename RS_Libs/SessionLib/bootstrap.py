"""
Process-wide wiring of the editor.

Opens the entitlement store once, builds the proxy transport and the
generative service, and hands out an EditorSession. Everything is torn down
when the context exits.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
import logging

from RS_Libs.config import StudioConfig, load_config
from RS_Libs.EntitlementLib.entitlement_gate import EntitlementGate
from RS_Libs.EntitlementLib.entitlement_store import EntitlementStore
from RS_Libs.RemoteLib.generative_service import GenerativeService
from RS_Libs.RemoteLib.proxy_client import ProxyClient
from RS_Libs.SessionLib.editor_session import EditorSession

logger = logging.getLogger(__name__)


@contextmanager
def studio_session(
    config: Optional[StudioConfig] = None,
    config_path: Optional[Path] = None,
    transport=None,
) -> Iterator[EditorSession]:
    """
    Open a fully wired editor session.

    Args:
        config: Explicit configuration (takes precedence over config_path)
        config_path: JSON config file to load when no config is given
        transport: Optional transport replacing the HTTP proxy client

    Yields:
        EditorSession ready for an upload
    """
    config = config or load_config(config_path)
    client = None
    if transport is None:
        client = ProxyClient(config.proxy_url, timeout=config.request_timeout)
        transport = client

    store = EntitlementStore(Path(config.entitlement_path)).open()
    session = EditorSession(
        GenerativeService(transport, max_workers=config.max_workers),
        EntitlementGate(store),
        config=config,
    )
    logger.info(f"Studio session started (proxy {config.proxy_url})")
    try:
        yield session
    finally:
        session.close()
        store.close()
        if client is not None:
            client.close()
