"""
Identity & credential store: customers, admins and one-time passwords.

Customers and admins live in separate collections and never share a token
principal. Both are protected by a failed-attempt counter that locks the
account for a while once it reaches its threshold; a locked account is
rejected before any credential is compared.
"""
import logging
import secrets
from datetime import timedelta
from typing import List, Optional

import pydantic
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import settings
from database import collection, create_document, serialize_doc, to_object_id, utcnow
from errors import Conflict, InvalidOTP, NotFound, Unauthorized, ValidationError
from mailer import send_otp_email
from schemas import Admin, OTP, User
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

OTP_PURPOSES = ("registration", "login", "password_reset")
MIN_PASSWORD_LENGTH = 6


def normalize_email(email: str) -> str:
    if not email or "@" not in email:
        raise ValidationError("A valid email is required.")
    return email.strip().lower()


def generate_otp() -> str:
    low = 10 ** (settings.OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


# ----------------------- OTP -----------------------
def issue_otp(email: str, purpose: str):
    """Create a fresh code for (email, purpose) and mail it.

    The record is kept even when the email cannot be sent; the caller gets an
    Unavailable error in that case.
    """
    email = normalize_email(email)
    if purpose not in OTP_PURPOSES:
        raise ValidationError("Invalid OTP type.")

    existing = collection("user").find_one({"email": email})
    if purpose == "registration" and existing:
        raise Conflict("User already exists with this email.")
    if purpose in ("login", "password_reset") and not existing:
        raise NotFound("User not found with this email.")

    otps = collection("otp")
    otps.delete_many({"email": email, "type": purpose})

    code = generate_otp()
    expires_at = utcnow() + timedelta(minutes=settings.OTP_TTL_MINUTES)
    create_document("otp", OTP(email=email, otp=code, type=purpose, expires_at=expires_at))
    logger.info("Issued %s OTP for %s", purpose, email)

    send_otp_email(email, code, purpose)
    return expires_at


def _live_otp_filter(email: str, code: str, purpose: str, verified: bool) -> dict:
    # TTL eviction runs about once a minute, so expiry is also checked here
    return {
        "email": email,
        "otp": str(code),
        "type": purpose,
        "verified": verified,
        "expires_at": {"$gt": utcnow()},
    }


def verify_otp(email: str, code: str, purpose: str) -> bool:
    email = normalize_email(email)
    if purpose not in OTP_PURPOSES:
        raise ValidationError("Invalid OTP type.")
    record = collection("otp").find_one_and_update(
        _live_otp_filter(email, code, purpose, verified=False),
        {"$set": {"verified": True, "updated_at": utcnow()}},
    )
    if not record:
        raise InvalidOTP()
    return True


def _consume_otp(email: str, code: str, purpose: str):
    record = collection("otp").find_one_and_delete(_live_otp_filter(email, code, purpose, verified=True))
    if not record:
        raise InvalidOTP("Invalid or unverified OTP.")
    collection("otp").delete_many({"email": email, "type": purpose})


# ----------------------- Customers -----------------------
def register_user(profile: dict, otp_code: str) -> dict:
    email = normalize_email(profile.get("email"))
    password = profile.get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    otps = collection("otp")
    if not otps.find_one(_live_otp_filter(email, otp_code, "registration", verified=True)):
        raise InvalidOTP("Invalid or unverified OTP.")

    users = collection("user")
    if users.find_one({"email": email}):
        raise Conflict("User already exists with this email.")

    try:
        user = User(
            name=profile.get("name") or "",
            email=email,
            password_hash=hash_password(password),
            phone=profile.get("phone"),
            address=profile.get("address"),
            is_active=True,
            email_verified=True,
        )
    except pydantic.ValidationError:
        raise ValidationError("Name and a valid email are required.")
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        # a concurrent registration won the unique email index
        raise Conflict("User already exists with this email.")

    otps.delete_many({"email": email, "type": "registration"})
    logger.info("Registered customer %s (%s)", user_id, email)
    return serialize_doc(users.find_one({"_id": to_object_id(user_id)}))


def _check_lock(coll, account: dict):
    lock_until = account.get("lock_until")
    if lock_until is None:
        return
    if utcnow() < lock_until:
        raise Unauthorized("Account is temporarily locked. Try again later.")
    coll.update_one(
        {"_id": account["_id"]},
        {"$set": {"login_attempts": 0}, "$unset": {"lock_until": ""}},
    )


def _record_failure(coll, account: dict, lockout):
    max_attempts, lock_minutes = lockout
    updated = coll.find_one_and_update(
        {"_id": account["_id"]},
        {"$inc": {"login_attempts": 1}},
        return_document=ReturnDocument.AFTER,
    )
    attempts = updated.get("login_attempts", 0) if updated else 0
    logger.warning("Failed login for %s (%d/%d)", account.get("email"), attempts, max_attempts)
    if attempts >= max_attempts:
        coll.update_one(
            {"_id": account["_id"]},
            {"$set": {"lock_until": utcnow() + timedelta(minutes=lock_minutes)}},
        )
        logger.warning("Locked %s for %d minutes", account.get("email"), lock_minutes)


def _record_success(coll, account: dict) -> dict:
    return coll.find_one_and_update(
        {"_id": account["_id"]},
        {"$set": {"login_attempts": 0, "last_login": utcnow()}, "$unset": {"lock_until": ""}},
        return_document=ReturnDocument.AFTER,
    )


def authenticate_user(email: str, mode: str = "password", password: Optional[str] = None,
                      otp: Optional[str] = None) -> dict:
    """Check a customer's password or verified login OTP.

    Returns the account (without its hash) on success.
    """
    email = normalize_email(email)
    if mode not in ("password", "otp"):
        raise ValidationError("loginType must be 'password' or 'otp'.")

    users = collection("user")
    user = users.find_one({"email": email, "role": "customer"})
    if not user:
        raise Unauthorized("Invalid credentials.")
    if not user.get("is_active") or not user.get("email_verified"):
        raise Unauthorized("Account not verified or inactive.")
    _check_lock(users, user)

    if mode == "otp":
        try:
            _consume_otp(email, otp or "", "login")
            valid = True
        except InvalidOTP:
            valid = False
    else:
        valid = verify_password(password or "", user.get("password_hash", ""))

    if not valid:
        _record_failure(users, user, settings.CUSTOMER_LOCKOUT)
        raise Unauthorized("Invalid credentials.")

    logger.info("Customer %s logged in", email)
    return serialize_doc(_record_success(users, user))


def reset_password(email: str, otp_code: str, new_password: str) -> dict:
    email = normalize_email(email)
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    users = collection("user")
    user = users.find_one({"email": email})
    if not user:
        raise NotFound("User not found with this email.")
    _consume_otp(email, otp_code, "password_reset")
    users.update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password_hash": hash_password(new_password), "login_attempts": 0, "updated_at": utcnow()},
            "$unset": {"lock_until": ""},
        },
    )
    logger.info("Password reset for %s", email)
    return serialize_doc(users.find_one({"_id": user["_id"]}))


# ----------------------- Admins -----------------------
def authenticate_admin(email: str, password: str) -> dict:
    email = normalize_email(email)
    admins = collection("admin")
    admin = admins.find_one({"email": email})
    if not admin or not admin.get("is_active"):
        raise Unauthorized("Invalid admin credentials")
    _check_lock(admins, admin)

    if not verify_password(password or "", admin.get("password_hash", "")):
        _record_failure(admins, admin, settings.ADMIN_LOCKOUT)
        raise Unauthorized("Invalid admin credentials")

    logger.info("Admin %s logged in", email)
    return serialize_doc(_record_success(admins, admin))


def create_admin(username: str, email: str, password: str, permissions: Optional[List[str]] = None) -> dict:
    email = normalize_email(email)
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    admins = collection("admin")
    if admins.find_one({"$or": [{"email": email}, {"username": username}]}):
        raise Conflict("Admin already exists!")
    fields = {"username": username, "email": email, "password_hash": hash_password(password)}
    if permissions:
        fields["permissions"] = list(permissions)
    try:
        admin = Admin(**fields)
    except pydantic.ValidationError:
        raise ValidationError("Username and a valid email are required.")
    try:
        admin_id = create_document("admin", admin)
    except DuplicateKeyError:
        raise Conflict("Admin already exists!")
    logger.info("Created admin %s (%s)", username, email)
    return serialize_doc(admins.find_one({"_id": to_object_id(admin_id)}))
