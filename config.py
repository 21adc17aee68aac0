import os
from dotenv import load_dotenv
from pymongo import MongoClient
import logging

# Load environment variables from .env
load_dotenv()

# MongoDB connection
MONGO_URI = os.getenv("MONGODB_CONNECTION_STRING")
client = MongoClient(MONGO_URI)
db = client[os.getenv("MONGODB_DATABASE", "car_rental")]

# Logging
logging.basicConfig(
    filename='system.log',
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Stripe hosted checkout
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "usd")
SITE_URL = os.getenv("SITE_URL", "http://localhost:8501")

# Veriff identity verification
VERIFF_API_KEY = os.getenv("VERIFF_API_KEY")
VERIFF_API_SECRET = os.getenv("VERIFF_API_SECRET")
VERIFF_BASE_URL = os.getenv("VERIFF_BASE_URL", "https://stationapi.veriff.com")
VERIFF_CALLBACK_URL = os.getenv("VERIFF_CALLBACK_URL")
VERIFICATION_POLL_INTERVAL = float(os.getenv("VERIFICATION_POLL_INTERVAL", "5"))
VERIFICATION_POLL_TIMEOUT = float(os.getenv("VERIFICATION_POLL_TIMEOUT", "300"))

# Admin portal
ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH")

# Whether selected extras are added to the amount sent to checkout
CHARGE_EXTRAS = os.getenv("CHARGE_EXTRAS", "false").lower() in ("1", "true", "yes")
