"""Shared pytest fixtures for notification service tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the module-level JWKS cache so keys never leak between tests."""
    import marketnotify.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture(autouse=True)
def _reset_conversation_manager():
    """Drop the lazily built WhatsApp manager so each test picks its own provider."""
    import marketnotify.api.routes.whatsapp as whatsapp_routes

    whatsapp_routes._conversation_manager = None
    yield
    whatsapp_routes._conversation_manager = None
