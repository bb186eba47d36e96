"""
GamerHub — Real-time social layer for a gaming community
==========================================================
Chat, friendships, follows and notifications for the GamerHub platform,
delivered over REST plus two WebSocket hubs.

Package layout::

    gamerhub/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Group names, event names, limits
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Social / chat / notification tables
    ├── realtime/
    │   ├── registry.py    # Connection registry + broadcast groups
    │   ├── dispatcher.py  # Outbound event queue with retries
    │   ├── hub.py         # Hub base class + wire protocol
    │   ├── chat_hub.py    # Conversations, typing, receipts, reactions
    │   ├── notification_hub.py  # Per-user notification push
    │   └── notifier.py    # Push façade used by services
    ├── services/
    │   ├── chat_service.py          # Message write path
    │   ├── notification_service.py  # Notification write path + creators
    │   ├── retention_service.py     # Expiry / retention sweeps
    │   ├── conversation_service.py  # Conversation management
    │   ├── friendship_service.py    # Friend requests & blocks
    │   └── follow_service.py        # Follow graph
    └── api/
        ├── main.py        # FastAPI app + hub endpoints
        ├── deps.py        # JWT verification, engine, config
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
