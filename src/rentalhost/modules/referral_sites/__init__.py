from rentalhost.modules.referral_sites.service import KEEP, ReferralSiteService

__all__ = ["KEEP", "ReferralSiteService"]
