"""
CredentialVault — encrypts and stores credential bundles.

The vault is the only place plaintext tokens are unwrapped.  Its public
surface is deliberately write-only: ``write`` acknowledges with nothing and
``exists`` answers yes/no.  Reading tokens back is a separate privilege that
lives outside this service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from connectors.errors import VaultError, VaultErrorKind
from connectors.schemas import CredentialBundle
from database.helpers import build_upsert
from database.models import IntegrationCredential
from utils.redaction import redact_id

logger = logging.getLogger(__name__)


class CredentialVault:
    """Write-only encrypted store keyed by (org_id, provider)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        keyring_token: Optional[str],
    ) -> None:
        self._session_factory = session_factory
        self._keyring_token = keyring_token
        if not keyring_token:
            logger.error("KEYRING_TOKEN not configured: every vault write will be refused")

    def _cipher(self) -> TokenCipher:
        # Raises VaultError(KEY_NOT_CONFIGURED) before anything is touched
        return TokenCipher(self._keyring_token)

    async def write(self, bundle: CredentialBundle) -> None:
        """
        Encrypt ``bundle`` and upsert it.

        Exactly one row exists for (organization_id, provider) afterwards,
        holding only this bundle's data.

        Raises
        ------
        VaultError
            ``KEY_NOT_CONFIGURED`` if no encryption key is set (nothing is
            written), ``STORAGE_FAILED`` if the database rejects the write
            (the transaction is rolled back).
        """
        if not bundle.organization_id:
            raise ValueError("bundle.organization_id is required")
        cipher = self._cipher()

        refresh = bundle.refresh_token.get_secret_value() if bundle.refresh_token else None
        now = datetime.now(timezone.utc)
        values = {
            "org_id": bundle.organization_id,
            "provider": bundle.provider.value,
            "access_token_encrypted": cipher.encrypt(bundle.access_token.get_secret_value()),
            "refresh_token_encrypted": cipher.encrypt(refresh) if refresh else None,
            "expires_at": bundle.expires_at,
            "scope": bundle.scope,
            "provider_meta": bundle.metadata or {},
            "status": "connected",
            "updated_at": now,
        }

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        build_upsert(
                            session,
                            IntegrationCredential,
                            values,
                            conflict_columns=("org_id", "provider"),
                        )
                    )
        except SQLAlchemyError as exc:
            logger.error(
                "Vault write failed for %s (org %s): %s",
                bundle.provider.value,
                redact_id(bundle.organization_id),
                type(exc).__name__,
            )
            raise VaultError(VaultErrorKind.STORAGE_FAILED, "Failed to store integration") from exc

        logger.info(
            "Token encrypted and stored: provider=%s org=%s",
            bundle.provider.value,
            redact_id(bundle.organization_id),
        )

    async def exists(self, org_id: str, provider: str) -> bool:
        """Return True if a credential is stored for (org_id, provider)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(IntegrationCredential.id).where(
                    IntegrationCredential.org_id == org_id,
                    IntegrationCredential.provider == provider,
                )
            )
            return result.scalar_one_or_none() is not None
