"""Per-property extranet settings for Booking.com and other referral platforms."""

from __future__ import annotations

import logging
from typing import Any

from rentalhost.database import get_session
from rentalhost.exceptions import EncryptionError, NotFoundError, ValidationError
from rentalhost.models.referral import ReferralSiteConfig
from rentalhost.modules.referral_sites import encryption

logger = logging.getLogger(__name__)

_OPTIONAL_FIELDS = (
    "hotel_id",
    "account_number",
    "username",
    "extranet_url",
    "notes",
    "currency_code",
    "currency_symbol",
)

# Sentinel for "password not supplied", distinct from None and ""
KEEP = object()


class ReferralSiteService:
    """Referral-site configs with encrypted passwords."""

    def list_configs(self, property_id: int, decrypt_passwords: bool = False) -> list[dict[str, Any]]:
        """Configs for a property ordered by platform.

        Passwords are only decrypted on request; a row whose password cannot
        be decrypted is returned with ``password`` set to None.
        """
        session = get_session()
        try:
            configs = (
                session.query(ReferralSiteConfig)
                .filter(ReferralSiteConfig.property_id == property_id)
                .order_by(ReferralSiteConfig.platform)
                .all()
            )
        finally:
            session.close()

        results = []
        for config in configs:
            password = None
            if decrypt_passwords and config.password_encrypted:
                try:
                    password = encryption.decrypt(config.password_encrypted)
                except EncryptionError:
                    logger.error("Failed to decrypt password for referral config %s", config.id)
            results.append(config.to_dict(password=password))
        return results

    def get_config(self, property_id: int, platform: str) -> ReferralSiteConfig | None:
        session = get_session()
        try:
            return (
                session.query(ReferralSiteConfig)
                .filter(ReferralSiteConfig.property_id == property_id, ReferralSiteConfig.platform == platform)
                .first()
            )
        finally:
            session.close()

    def save_config(self, data: dict[str, Any], password: Any = KEEP) -> ReferralSiteConfig:
        """Update by ``id`` when given, otherwise upsert on (property_id, platform).

        ``password``: KEEP leaves the stored secret alone, None or "" clears it,
        any other string replaces it.
        """
        if not data.get("property_id"):
            raise ValidationError("property_id is required")
        if not data.get("id") and not data.get("platform"):
            raise ValidationError("platform is required")

        session = get_session()
        try:
            if data.get("id"):
                config = (
                    session.query(ReferralSiteConfig)
                    .filter(ReferralSiteConfig.id == data["id"], ReferralSiteConfig.property_id == data["property_id"])
                    .first()
                )
                if config is None:
                    raise NotFoundError("Referral site config not found")
            else:
                config = (
                    session.query(ReferralSiteConfig)
                    .filter(
                        ReferralSiteConfig.property_id == data["property_id"],
                        ReferralSiteConfig.platform == data["platform"],
                    )
                    .first()
                )
                if config is None:
                    config = ReferralSiteConfig(property_id=data["property_id"], platform=data["platform"])
                    session.add(config)

            if data.get("platform"):
                config.platform = data["platform"]
            for name in _OPTIONAL_FIELDS:
                setattr(config, name, data.get(name) or None)
            config.config_data = data.get("config_data") or {}
            config.is_active = data["is_active"] if data.get("is_active") is not None else True

            if password is not KEEP:
                if password and password.strip():
                    config.password_encrypted = encryption.encrypt(password)
                else:
                    config.password_encrypted = None

            session.commit()
            logger.info("Saved %s referral config for property %s", config.platform, config.property_id)
            return config
        finally:
            session.close()

    def delete_config(self, config_id: int, property_id: int | None = None) -> None:
        session = get_session()
        try:
            query = session.query(ReferralSiteConfig).filter(ReferralSiteConfig.id == config_id)
            if property_id is not None:
                query = query.filter(ReferralSiteConfig.property_id == property_id)
            config = query.first()
            if config is None:
                raise NotFoundError("Referral site config not found")
            session.delete(config)
            session.commit()
        finally:
            session.close()
