# Voice Presence - Main Entry Point
# Keeps one account present in a voice channel until stopped

"""
Voice Presence - Entry Point

Loads configuration, builds the gateway client and keeps it running:
Config → GatewayClient → Gateway (heartbeat, identify, voice state)

Stops on SIGINT/SIGTERM with a manual disconnect, which cancels every
pending reconnect.
"""

import asyncio
import os
import signal
from pathlib import Path

import yaml
from dotenv import load_dotenv

from voice_presence.connection.client_config import ClientConfig
from voice_presence.connection.websocket_client import GatewayClient
from voice_presence.errors import ConfigError
from voice_presence.gateway.opcodes import GATEWAY_URL, PRESENCE_STATUSES
from voice_presence.utils.logger import setup_logger

# Global flag for shutdown
shutdown_event = asyncio.Event()

DEFAULT_CONFIG = {
    'gateway': {
        'url': GATEWAY_URL
    },
    'voice': {
        'server_id': None,
        'channel_id': None,
        'self_mute': True,
        'self_deaf': True
    },
    'auto_reconnect': {
        'enabled': False,
        'delay': 1,
        'max_retries': 9999
    },
    'presence': {
        'status': None
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/voice_presence.log'
    }
}

def validate_config(config: dict) -> tuple[bool, list[str]]:
    """
    Validate configuration structure

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []
    required_sections = ['gateway', 'voice', 'auto_reconnect', 'discord']

    for section in required_sections:
        if not isinstance(config.get(section), dict):
            errors.append(f"Missing required section: {section}")

    if not config.get('discord', {}).get('token'):
        errors.append("Config error: DISCORD_TOKEN is not set")

    voice = config.get('voice', {}) or {}
    if bool(voice.get('server_id')) != bool(voice.get('channel_id')):
        errors.append("Config error: voice.server_id and voice.channel_id must be set together")

    auto = config.get('auto_reconnect', {}) or {}
    numeric_checks = [
        ('auto_reconnect.delay', auto.get('delay')),
        ('auto_reconnect.max_retries', auto.get('max_retries')),
    ]
    for key, value in numeric_checks:
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0):
            errors.append(f"Config error: {key} must be a non-negative number")

    status = (config.get('presence', {}) or {}).get('status')
    if status and str(status).lower() not in PRESENCE_STATUSES:
        # Not fatal: the presence update is skipped
        errors.append(
            f"Config warning: presence.status '{status}' not in {', '.join(PRESENCE_STATUSES)}"
        )

    fatal = [e for e in errors if not e.startswith("Config warning")]
    return (len(fatal) == 0, errors)

def load_config() -> dict:
    """
    Load configuration from config/config.yaml and config/secrets.env
    """
    project_root = Path(__file__).parent
    load_dotenv(project_root / "config" / "secrets.env")

    config_path = project_root / "config" / "config.yaml"
    if config_path.exists():
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    else:
        config = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}

    # Environment overrides for ids, secrets from environment only
    voice = config.setdefault('voice', {})
    if os.getenv('DISCORD_SERVER_ID'):
        voice['server_id'] = os.getenv('DISCORD_SERVER_ID')
    if os.getenv('DISCORD_CHANNEL_ID'):
        voice['channel_id'] = os.getenv('DISCORD_CHANNEL_ID')
    config['discord'] = {
        'token': os.getenv('DISCORD_TOKEN', '')
    }

    return config

def build_client_config(config: dict) -> ClientConfig:
    """Map the loaded config sections onto ClientConfig"""
    voice = config.get('voice', {}) or {}
    return ClientConfig.from_dict({
        'token': config.get('discord', {}).get('token', ''),
        'server_id': voice.get('server_id'),
        'channel_id': voice.get('channel_id'),
        'self_mute': voice.get('self_mute'),
        'self_deaf': voice.get('self_deaf'),
        'auto_reconnect': config.get('auto_reconnect', {}),
        'presence': config.get('presence', {}),
        'gateway_url': config.get('gateway', {}).get('url'),
    })

def handle_shutdown(signum=None, frame=None):
    """Handle shutdown signals"""
    print("\n🛑 Received shutdown signal")
    shutdown_event.set()

async def run(client: GatewayClient, logger):
    """Connect and stay present until shutdown"""
    client.on_connect(lambda: logger.info("✅ Gateway connected"))
    client.on_disconnect(lambda: logger.warning("Gateway disconnected"))
    client.on_ready(lambda profile: logger.info(
        f"🎉 Logged in as {profile.get('username')}#{profile.get('discriminator')}"
    ))
    client.on_voice_ready(lambda: logger.info("🎤 Voice channel joined"))
    client.on_error(lambda error: logger.error(f"Client error: {error}"))

    await client.connect()
    logger.info("Press Ctrl+C to stop")

    await shutdown_event.wait()

    logger.info("Shutting down...")
    await client.disconnect()
    logger.info("✅ Shutdown complete")

async def main():
    """Main entry point"""
    logger = setup_logger("Main", "INFO")

    try:
        logger.info("Loading configuration...")
        config = load_config()

        is_valid, errors = validate_config(config)
        if not is_valid:
            logger.error("❌ Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            return
        for warning in errors:
            logger.warning(f"  - {warning}")

        logging_config = config.get('logging', {}) or {}
        setup_logger(
            "GatewayClient",
            logging_config.get('level', 'INFO'),
            logging_config.get('file')
        )

        client = GatewayClient(build_client_config(config))
        await run(client, logger)

    except ConfigError as e:
        logger.error(f"❌ Invalid configuration: {e}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise

if __name__ == "__main__":
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
