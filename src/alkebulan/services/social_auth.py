"""OAuth authorize URLs for connecting social media accounts."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import quote

import structlog

from ..config import Settings
from ..domain.errors import ProviderNotConfigured

logger = structlog.get_logger()


class SocialPlatform(str, Enum):
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    LINKEDIN = "linkedin"

    @classmethod
    def parse(cls, value: str) -> Optional["SocialPlatform"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class PlatformConfig:
    client_id: Optional[str]
    redirect_uri: str
    scope: List[str]
    response_type: str = "code"


def _encode(value: str) -> str:
    # Same escaping as JavaScript's encodeURIComponent
    return quote(value, safe="-_.!~*'()")


class SocialAuthService:
    """Builds provider authorize URLs from configured client ids."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def platform_configs(self) -> Dict[SocialPlatform, PlatformConfig]:
        site = self.settings.site_url.rstrip("/")

        def callback(platform: SocialPlatform) -> str:
            return f"{site}/auth/{platform.value}/callback"

        return {
            SocialPlatform.INSTAGRAM: PlatformConfig(
                client_id=self.settings.instagram_client_id,
                redirect_uri=callback(SocialPlatform.INSTAGRAM),
                scope=["user_profile", "user_media"],
            ),
            SocialPlatform.FACEBOOK: PlatformConfig(
                client_id=self.settings.facebook_client_id,
                redirect_uri=callback(SocialPlatform.FACEBOOK),
                scope=["user_photos", "user_videos", "user_posts"],
            ),
            SocialPlatform.TIKTOK: PlatformConfig(
                client_id=self.settings.tiktok_client_key,
                redirect_uri=callback(SocialPlatform.TIKTOK),
                scope=["user.info.basic", "video.list"],
            ),
            SocialPlatform.LINKEDIN: PlatformConfig(
                client_id=self.settings.linkedin_client_id,
                redirect_uri=callback(SocialPlatform.LINKEDIN),
                scope=["r_liteprofile", "r_emailaddress", "w_member_social"],
            ),
        }

    def get_auth_url(self, platform: SocialPlatform) -> str:
        config = self.platform_configs()[platform]
        if not config.client_id:
            raise ProviderNotConfigured(f"{platform.value} OAuth client is not configured")

        client_id = _encode(config.client_id)
        redirect_uri = _encode(config.redirect_uri)

        if platform is SocialPlatform.INSTAGRAM:
            url = (
                "https://api.instagram.com/oauth/authorize"
                f"?client_id={client_id}&redirect_uri={redirect_uri}"
                f"&scope={','.join(config.scope)}&response_type={config.response_type}"
            )
        elif platform is SocialPlatform.FACEBOOK:
            url = (
                "https://www.facebook.com/v18.0/dialog/oauth"
                f"?client_id={client_id}&redirect_uri={redirect_uri}"
                f"&scope={','.join(config.scope)}&response_type={config.response_type}"
            )
        elif platform is SocialPlatform.TIKTOK:
            url = (
                "https://www.tiktok.com/auth/authorize/"
                f"?client_key={client_id}&scope={','.join(config.scope)}"
                f"&response_type={config.response_type}&redirect_uri={redirect_uri}"
            )
        else:
            url = (
                "https://www.linkedin.com/oauth/v2/authorization"
                f"?response_type={config.response_type}&client_id={client_id}"
                f"&redirect_uri={redirect_uri}&scope={_encode(' '.join(config.scope))}"
            )

        logger.info("social_auth_url_built", platform=platform.value)
        return url
