"""Discord delivery and operator command integration."""

from .commands import (
    ROUTES_COMMAND_NAME,
    RoutesCommandHandler,
    build_application_commands,
    sync_commands,
)
from .constants import DISCORD_API_BASE_URL, DISCORD_MAX_MESSAGE_LENGTH
from .embeds import build_embed, build_message_payload
from .errors import (
    DiscordAPIError,
    DiscordError,
    DiscordPermanentError,
    DiscordRateLimitError,
)
from .gateway import DiscordDeliveryGateway
from .interactions import verify_interaction_signature
from .rest import DiscordRestClient
from .roles import AdminRoleResolver

__all__ = [
    "AdminRoleResolver",
    "DISCORD_API_BASE_URL",
    "DISCORD_MAX_MESSAGE_LENGTH",
    "DiscordAPIError",
    "DiscordDeliveryGateway",
    "DiscordError",
    "DiscordPermanentError",
    "DiscordRateLimitError",
    "DiscordRestClient",
    "ROUTES_COMMAND_NAME",
    "RoutesCommandHandler",
    "build_application_commands",
    "build_embed",
    "build_message_payload",
    "sync_commands",
    "verify_interaction_signature",
]
