"""
Exchange Connectors Package

Each exchange has its own subfolder with:
- auth.py: Request signing
- api_client.py: REST API logic
- ws_client.py: WebSocket streaming logic

Currently provided: coinbase_pro.
"""
