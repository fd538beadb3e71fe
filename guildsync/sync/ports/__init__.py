# =============================================================================
# File: guildsync/sync/ports/__init__.py
# Description: Ports directory for the sync domain
# =============================================================================
# EMPTY - use direct imports:
#   from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
#   from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
#   from guildsync.sync.ports.web_app_port import WebAppPort
