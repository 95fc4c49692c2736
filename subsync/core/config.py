import json
import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./subsync.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-secret-change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ Stripe
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))

# ✅ Reconciliation
RECONCILE_MAX_ATTEMPTS = int(os.getenv("RECONCILE_MAX_ATTEMPTS", "3"))

# ✅ Receipts
RECEIPT_RATE_LIMIT = int(os.getenv("RECEIPT_RATE_LIMIT", "20"))
RECEIPT_RATE_WINDOW_SECONDS = int(os.getenv("RECEIPT_RATE_WINDOW_SECONDS", "60"))

# productId -> "weekly" | "monthly" | "yearly"
PRODUCT_DURATIONS = json.loads(os.getenv("PRODUCT_DURATIONS_JSON") or "{}")

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ✅ CORS
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:8081,http://localhost:3000").split(",")
    if origin.strip()
]
