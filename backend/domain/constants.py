"""
Domain constants used across services/routers.
"""

# Notification types pushed over the WebSocket channel
NOTIFY_CONNECTION = "connection"
NOTIFY_HEARTBEAT = "heartbeat"
NOTIFY_PONG = "pong"
NOTIFY_ORDER_STATUS = "order_status"
NOTIFY_NEW_ORDER = "new_order"
NOTIFY_LOW_STOCK = "low_stock"
NOTIFY_NEW_REVIEW = "new_review"
NOTIFY_PRICE_CHANGE = "price_change"
NOTIFY_NEW_USER = "new_user"

# Accepted cover image uploads
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}

# Cap on list endpoints that are not paginated (top-rated, low-stock, ...)
SHORTLIST_SIZE = 10
