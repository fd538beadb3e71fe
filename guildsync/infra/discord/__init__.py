# =============================================================================
# File: guildsync/infra/discord/__init__.py
# Description: Discord adapter package (discord.py)
# =============================================================================
# EMPTY - use direct imports
