import hmac
import hashlib
import logging
import threading
import datetime
from concurrent.futures import Future
import requests
from pymongo.errors import PyMongoError
from config import db
import config
from models.verification_model import VerificationStatus

logger = logging.getLogger(__name__)

# Veriff decision codes
APPROVED = 9001
DECLINED = 9102
RESUBMISSION_REQUESTED = 9103

REQUEST_TIMEOUT = 15


def _split_name(full_name):
    parts = (full_name or "").split()
    first_name = parts[0] if parts else "Unknown"
    last_name = " ".join(parts[1:]) or "Customer"
    return first_name, last_name


def create_verification_session(customer_name, customer_email, customer_phone):
    """Start a Veriff session for a booking that has no customer record yet."""
    if not config.VERIFF_API_KEY:
        logger.error("Veriff configuration missing: VERIFF_API_KEY is not set.")
        return {"ok": False, "error": "Identity verification is not available right now"}

    first_name, last_name = _split_name(customer_name)
    body = {
        "verification": {
            "person": {"firstName": first_name, "lastName": last_name},
            # No customer id exists yet, so the email links the decision back to the booking
            "vendorData": customer_email,
        }
    }
    if config.VERIFF_CALLBACK_URL:
        body["verification"]["callback"] = config.VERIFF_CALLBACK_URL

    try:
        response = requests.post(
            f"{config.VERIFF_BASE_URL}/v1/sessions",
            json=body,
            headers={"Content-Type": "application/json", "X-AUTH-CLIENT": config.VERIFF_API_KEY},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        verification = response.json()["verification"]
    except (requests.RequestException, KeyError, ValueError) as e:
        logger.error(f"Failed to create Veriff session for {customer_email}: {e}")
        return {"ok": False, "error": "Failed to start verification"}

    session_id = verification["id"]
    try:
        db.identity_verifications.insert_one({
            "customer_id": None,
            "provider": "veriff",
            "session_id": session_id,
            "verification_token": verification.get("sessionToken") or session_id,
            "external_user_id": customer_email,
            "customer_phone": customer_phone,
            "status": "init",
            "review_status": "init",
            "verification_url": verification.get("url"),
            "created_at": datetime.datetime.now(),
        })
    except PyMongoError as e:
        # The webhook creates the record if this insert is lost
        logger.warning(f"Could not store verification session {session_id}: {e}")

    logger.info(f"Veriff session {session_id} created for {customer_email}.")
    return {
        "ok": True,
        "session_id": session_id,
        "session_url": verification.get("url"),
        "session_token": verification.get("sessionToken") or session_id,
    }


def get_review_result(session_id):
    """Latest review result for a session: 'GREEN', 'RED', 'RETRY' or None while undecided."""
    try:
        record = db.identity_verifications.find_one(
            {"session_id": session_id}, sort=[("updated_at", -1)]
        )
    except PyMongoError as e:
        logger.error(f"Error checking verification status for {session_id}: {e}")
        return None
    if not record:
        return None
    return record.get("review_result")


def review_result_to_status(review_result):
    if review_result == "GREEN":
        return VerificationStatus.VERIFIED
    if review_result == "RED":
        return VerificationStatus.REJECTED
    return None


def verify_signature(raw_body, signature, secret):
    if not signature:
        return False
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.lower(), signature.lower())


def _decision_update(verification):
    now = datetime.datetime.now()
    update = {"updated_at": now}
    code = verification.get("code")
    if code == APPROVED:
        update.update(review_result="GREEN", status="completed", review_status="completed",
                      verification_completed_at=now)
    elif code == DECLINED:
        update.update(review_result="RED", status="completed", review_status="completed",
                      rejection_reason=verification.get("reason") or "Verification declined")
    elif code == RESUBMISSION_REQUESTED:
        update.update(review_result="RETRY", status="pending", review_status="pending")
    else:
        update.update(status="pending", review_status="pending")

    document = verification.get("document")
    if document:
        update["document_type"] = document.get("type")
        update["document_number"] = document.get("number")
        update["document_country"] = document.get("country")
        if document.get("validUntil"):
            update["document_expiry_date"] = document["validUntil"]

    person = verification.get("person")
    if person:
        update["first_name"] = person.get("firstName")
        update["last_name"] = person.get("lastName")
        if person.get("dateOfBirth"):
            update["date_of_birth"] = person["dateOfBirth"]
    return update


def _customer_status(code):
    if code == APPROVED:
        return "verified"
    if code == DECLINED:
        return "rejected"
    return "pending"


def handle_webhook(payload, raw_body=b"", signature=None):
    """Apply a Veriff event notification.

    'started' is acknowledged, 'submitted' marks the session pending, and a
    decision carries the review result. Returns ``{"ok": bool, "error": ...}``.
    """
    if config.VERIFF_API_SECRET and not verify_signature(raw_body, signature, config.VERIFF_API_SECRET):
        logger.warning("Rejected Veriff webhook with an invalid signature.")
        return {"ok": False, "error": "Invalid signature"}

    action = payload.get("action")
    if action == "started":
        return {"ok": True}

    if action == "submitted":
        try:
            db.identity_verifications.update_one(
                {"session_id": payload.get("id")},
                {"$set": {"status": "pending", "review_status": "pending", "updated_at": datetime.datetime.now()}},
            )
        except PyMongoError as e:
            logger.warning(f"Could not mark verification {payload.get('id')} as submitted: {e}")
        return {"ok": True}

    verification = payload.get("verification") or {}
    session_id = verification.get("id")
    if not session_id:
        return {"ok": True}

    update = _decision_update(verification)
    try:
        record = db.identity_verifications.find_one({"session_id": session_id}, sort=[("created_at", -1)])
        if record is None:
            # Booking flow: decision can arrive before the session record exists
            update.update(provider="veriff", session_id=session_id, external_user_id=payload.get("vendorData"),
                          customer_id=None, created_at=update["updated_at"])
            db.identity_verifications.insert_one(update)
            logger.info(f"Stored Veriff decision for unknown session {session_id}.")
            return {"ok": True}

        db.identity_verifications.update_one({"_id": record["_id"]}, {"$set": update})
        if record.get("customer_id"):
            db.customers.update_one(
                {"_id": record["customer_id"]},
                {"$set": {"identity_verification_status": _customer_status(verification.get("code"))}},
            )
    except PyMongoError as e:
        logger.error(f"Failed to apply Veriff decision for {session_id}: {e}")
        return {"ok": False, "error": str(e)}

    logger.info(f"Veriff decision {verification.get('code')} applied to session {session_id}.")
    return {"ok": True}


class VerificationPoller:
    """Poll a session's review result on a fixed interval until a decision or the deadline.

    ``start()`` returns a Future that resolves to ``VerificationStatus.VERIFIED``
    or ``REJECTED``, or to None when the deadline passes without a decision.
    ``cancel()`` stops polling and cancels the future.
    """

    def __init__(self, session_id, fetch_result=get_review_result, interval=None, timeout=None, on_result=None):
        self.session_id = session_id
        self.fetch_result = fetch_result
        self.interval = config.VERIFICATION_POLL_INTERVAL if interval is None else interval
        self.timeout = config.VERIFICATION_POLL_TIMEOUT if timeout is None else timeout
        self.on_result = on_result
        self.future = Future()
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread = None

    def start(self):
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name=f"veriff-poll-{self.session_id}", daemon=True)
            self._thread.start()
        return self.future

    def cancel(self):
        self._stop.set()
        with self._lock:
            return self.future.cancel()

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def _finish(self, status):
        with self._lock:
            if self.future.done():
                return
            self.future.set_result(status)
        if status is not None and self.on_result:
            self.on_result(status)

    def _run(self):
        deadline = datetime.datetime.now() + datetime.timedelta(seconds=self.timeout)
        while not self._stop.wait(self.interval):
            try:
                status = review_result_to_status(self.fetch_result(self.session_id))
            except Exception as e:
                logger.error(f"Verification poll for {self.session_id} failed: {e}")
                status = None
            if status is not None:
                self._finish(status)
                return
            if datetime.datetime.now() >= deadline:
                logger.info(f"Stopped polling verification {self.session_id} after {self.timeout} seconds.")
                self._finish(None)
                return
