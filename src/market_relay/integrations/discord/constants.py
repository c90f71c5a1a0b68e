from __future__ import annotations

DISCORD_API_BASE_URL = "https://discord.com/api/v10"

# Discord hard limit for message content.
DISCORD_MAX_MESSAGE_LENGTH = 2000

# https://discord.com/developers/docs/resources/channel#embed-object-embed-limits
DISCORD_EMBED_TITLE_LIMIT = 256
DISCORD_EMBED_DESCRIPTION_LIMIT = 4096
DISCORD_EMBED_FIELD_NAME_LIMIT = 256
DISCORD_EMBED_FIELD_VALUE_LIMIT = 1024
DISCORD_EMBED_FOOTER_LIMIT = 2048
DISCORD_EMBED_MAX_FIELDS = 25

# Thread channel types, see the Discord channel object docs.
DISCORD_CHANNEL_ANNOUNCEMENT_THREAD = 10
DISCORD_CHANNEL_PUBLIC_THREAD = 11
DISCORD_CHANNEL_PRIVATE_THREAD = 12
DISCORD_THREAD_CHANNEL_TYPES = frozenset(
    {
        DISCORD_CHANNEL_ANNOUNCEMENT_THREAD,
        DISCORD_CHANNEL_PUBLIC_THREAD,
        DISCORD_CHANNEL_PRIVATE_THREAD,
    }
)

# Minutes of inactivity before a thread auto-archives.
DISCORD_THREAD_AUTO_ARCHIVE_MINUTES = 1440

# Interaction types and callback types.
DISCORD_INTERACTION_PING = 1
DISCORD_INTERACTION_APPLICATION_COMMAND = 2
DISCORD_CALLBACK_PONG = 1
DISCORD_CALLBACK_CHANNEL_MESSAGE = 4
DISCORD_MESSAGE_FLAG_EPHEMERAL = 1 << 6
