#!/usr/bin/env python3
"""
Entry point for the Trivia Quiz Bot.

    python main.py [path/to/config.json]

The Discord token is read from DISCORD_BOT_TOKEN, or from ``bot.token`` in
the config file when the variable is unset. Quiz limits, storage paths, the
Ollama model and logging all come from the same file.
"""

import asyncio
import sys
import os
import json
from pathlib import Path

from trivia.bot import run_bot, setup_logging

PLACEHOLDER_TOKEN = "YOUR_DISCORD_BOT_TOKEN_HERE"


def load_config(path="config.json"):
    """Parse the config file, exiting with a readable message when it is unusable."""
    config_path = Path(path)
    if not config_path.is_file():
        sys.exit(f"❌ {config_path} not found. Create it from the example in the repository "
                 f"and add your Discord bot token.")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        sys.exit(f"❌ {config_path} is not valid JSON (line {e.lineno}, column {e.colno}): {e.msg}")
    except OSError as e:
        sys.exit(f"❌ Could not read {config_path}: {e}")

    if not isinstance(config, dict):
        sys.exit(f"❌ {config_path} must contain a JSON object")
    return config


def get_bot_token(config):
    token = os.getenv('DISCORD_BOT_TOKEN') or (config.get('bot') or {}).get('token')
    if not token or token == PLACEHOLDER_TOKEN:
        sys.exit(
            "❌ No Discord bot token configured.\n"
            "   Export DISCORD_BOT_TOKEN or fill in bot.token in the config file."
        )
    return token


async def main(config_path):
    config = load_config(config_path)
    setup_logging(config)
    await run_bot(get_bot_token(config), config)


if __name__ == "__main__":
    print("🤖 Starting Trivia Quiz Bot...")
    try:
        asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "config.json"))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
